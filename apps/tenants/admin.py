# tenants/admin.py

from django.contrib import admin
from .models import Company, BankAccount


class BankAccountInline(admin.StackedInline):
    model = BankAccount
    extra = 0
    fields = ['bank_name', 'branch_code', 'account_type', 'account_number']


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'contact_email', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['code', 'name', 'contact_email']
    inlines = [BankAccountInline]
