from django.contrib import admin

from .models import Payment, PaymentPlan, PaymentInstallment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("reference", "user", "type", "amount", "status", "paid_at", "created_at")
    list_filter = ("type", "status")
    search_fields = ("reference", "user__username", "user__email")
    readonly_fields = ("gateway_status", "paid_at", "created_at", "updated_at")


class PaymentInstallmentInline(admin.TabularInline):
    model = PaymentInstallment
    extra = 0
    fields = ("installment_number", "amount", "due_date", "status", "paid_at", "payment")
    readonly_fields = ("paid_at", "payment")


@admin.register(PaymentPlan)
class PaymentPlanAdmin(admin.ModelAdmin):
    list_display = ("user", "course", "total_amount", "installment_count", "monthly_amount", "status")
    list_filter = ("status",)
    inlines = [PaymentInstallmentInline]
