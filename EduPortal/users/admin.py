# users/admin.py
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from django.contrib.auth.forms import UserCreationForm

from courses.models import Enrollment
from .models import CustomUser


class PortalUserCreationForm(UserCreationForm):
    class Meta(UserCreationForm.Meta):
        model = CustomUser
        fields = ("username", "email", "first_name", "last_name", "role")


class EnrollmentInline(admin.TabularInline):
    model = Enrollment
    extra = 0
    fields = ("course", "status", "enrolled_at")
    readonly_fields = ("enrolled_at",)


@admin.register(CustomUser)
class PortalUserAdmin(UserAdmin):
    add_form = PortalUserCreationForm
    fieldsets = UserAdmin.fieldsets + (("Portal", {"fields": ("role",)}),)
    add_fieldsets = (
        (None, {
            "classes": ("wide",),
            "fields": ("username", "email", "first_name", "last_name", "role", "password1", "password2"),
        }),
    )
    list_display = ("username", "email", "first_name", "last_name", "role", "is_staff")
    list_filter = ("role", "is_staff", "is_active")
    search_fields = ("username", "email", "first_name", "last_name")
    inlines = [EnrollmentInline]
    actions = ["make_instructor"]

    @admin.action(description="Promote selected users to instructor")
    def make_instructor(self, request, queryset):
        updated = queryset.update(role=CustomUser.Role.INSTRUCTOR)
        self.message_user(request, f"{updated} user(s) promoted to instructor.")
