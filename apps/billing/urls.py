# billing/urls.py

from django.urls import path

from . import views

app_name = 'billing'

urlpatterns = [
    # Invoice generation
    path('invoices/generate/', views.generate_invoices, name='generate_invoices'),

    # Automatic withdrawal
    path('auto-payment/', views.auto_payment, name='auto_payment'),

    # Invoice management
    path('invoices/', views.invoice_list, name='invoice_list'),
    path('invoices/export/', views.invoice_export, name='invoice_export'),
    path('invoices/<uuid:pk>/pdf/', views.invoice_pdf, name='invoice_pdf'),
]
