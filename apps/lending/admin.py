# lending/admin.py

from django.contrib import admin
from .models import Book, LendingRecord


@admin.register(Book)
class BookAdmin(admin.ModelAdmin):
    list_display = ['title', 'isbn', 'lending_fee_per_day']
    search_fields = ['title', 'isbn']


@admin.register(LendingRecord)
class LendingRecordAdmin(admin.ModelAdmin):
    list_display = ['book', 'company', 'lending_date', 'return_due_date', 'actual_return_date', 'status']
    list_filter = ['status', 'lending_date']
    search_fields = ['book__title', 'company__code', 'company__name']
    list_select_related = ['book', 'company']
