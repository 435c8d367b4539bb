from django.contrib import admin

from .models import Assignment, AssignmentSubmission, GradingHistory


@admin.register(Assignment)
class AssignmentAdmin(admin.ModelAdmin):
    list_display = ("title", "course", "instructor", "due_date", "submission_count", "graded_count", "is_published")
    list_filter = ("is_published", "allow_late_submission")
    readonly_fields = ("submission_count", "graded_count")


class GradingHistoryInline(admin.TabularInline):
    model = GradingHistory
    extra = 0
    can_delete = False
    readonly_fields = ("previous_grade", "new_grade", "graded_by", "graded_at", "reason")
    fields = readonly_fields


@admin.register(AssignmentSubmission)
class AssignmentSubmissionAdmin(admin.ModelAdmin):
    list_display = ("assignment", "student", "status", "is_late", "days_late", "grade", "submitted_at")
    list_filter = ("status", "is_late")
    inlines = [GradingHistoryInline]
