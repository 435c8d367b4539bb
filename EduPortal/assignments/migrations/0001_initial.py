import assignments.models
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("courses", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Assignment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("due_date", models.DateTimeField()),
                ("total_points", models.PositiveIntegerField(default=100)),
                ("max_file_size", models.PositiveIntegerField(default=10, help_text="Megabytes per file")),
                ("allowed_formats", models.JSONField(blank=True, default=assignments.models.default_allowed_formats)),
                ("max_files", models.PositiveIntegerField(default=5)),
                ("allow_late_submission", models.BooleanField(default=False)),
                ("late_penalty", models.FloatField(blank=True, help_text="Percent deducted per day late", null=True)),
                ("submission_count", models.PositiveIntegerField(default=0)),
                ("graded_count", models.PositiveIntegerField(default=0)),
                ("is_published", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("course", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="assignments", to="courses.course")),
                ("instructor", models.ForeignKey(limit_choices_to={"role": "instructor"}, on_delete=django.db.models.deletion.CASCADE, related_name="authored_assignments", to=settings.AUTH_USER_MODEL)),
            ],
        ),
        migrations.CreateModel(
            name="AssignmentSubmission",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("submission_text", models.TextField(blank=True, null=True)),
                ("files", models.JSONField(blank=True, default=list)),
                ("status", models.CharField(choices=[("DRAFT", "Draft"), ("SUBMITTED", "Submitted"), ("GRADED", "Graded"), ("RETURNED", "Returned"), ("RESUBMITTED", "Resubmitted")], default="DRAFT", max_length=12)),
                ("is_late", models.BooleanField(default=False)),
                ("days_late", models.PositiveIntegerField(default=0)),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("grade", models.FloatField(blank=True, null=True)),
                ("original_score", models.FloatField(blank=True, null=True)),
                ("final_score", models.FloatField(blank=True, null=True)),
                ("feedback", models.TextField(blank=True, null=True)),
                ("graded_at", models.DateTimeField(blank=True, null=True)),
                ("resubmission_count", models.PositiveIntegerField(default=0)),
                ("last_resubmitted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("assignment", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="submissions", to="assignments.assignment")),
                ("graded_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="graded_submissions", to=settings.AUTH_USER_MODEL)),
                ("student", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="assignment_submissions", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-submitted_at", "-id"],
            },
        ),
        migrations.AddConstraint(
            model_name="assignmentsubmission",
            constraint=models.UniqueConstraint(fields=("assignment", "student"), name="uniq_submission_assignment_student"),
        ),
        migrations.CreateModel(
            name="GradingHistory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("previous_grade", models.FloatField(blank=True, null=True)),
                ("new_grade", models.FloatField()),
                ("previous_feedback", models.TextField(blank=True, null=True)),
                ("new_feedback", models.TextField(blank=True, null=True)),
                ("graded_at", models.DateTimeField()),
                ("reason", models.TextField(blank=True, null=True)),
                ("graded_by", models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="grading_entries", to=settings.AUTH_USER_MODEL)),
                ("submission", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="grading_history", to="assignments.assignmentsubmission")),
            ],
            options={
                "verbose_name_plural": "grading history",
                "ordering": ["-graded_at", "-id"],
            },
        ),
    ]
