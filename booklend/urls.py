"""
URL configuration for booklend project.

Only the billing engine is served from this project; catalog, shipping and
authentication live in their own services.
"""
from django.contrib import admin
from django.urls import path, include

from billing import views as billing_views

urlpatterns = [
    # Django admin
    path('admin/', admin.site.urls),

    # Billing app - invoices, auto-withdrawal, exports
    path('billing/', include(('billing.urls', 'billing'), namespace='billing')),

    # Bulk settlement of billing records
    path('payments/process/', billing_views.process_payments, name='process_payments'),
]
