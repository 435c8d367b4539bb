from django.contrib import admin

from .models import Course, Enrollment, Application, ApplicationDraft


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ("title", "instructor", "price", "installment_enabled", "is_published")
    list_filter = ("is_published", "installment_enabled")
    search_fields = ("title",)


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = ("user", "course", "status", "enrolled_at")
    list_filter = ("status",)


@admin.register(Application)
class ApplicationAdmin(admin.ModelAdmin):
    list_display = ("user", "course", "status", "submitted_at")
    list_filter = ("status",)


admin.site.register(ApplicationDraft)
