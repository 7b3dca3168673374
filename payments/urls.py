from django.urls import path

from payments.views import (
    CancelSubscriptionView,
    CreatePreferenceView,
    MercadoPagoWebhookView,
    PaymentHistoryView,
)

app_name = "payments"

urlpatterns = [
    path("", PaymentHistoryView.as_view(), name="payment-history"),
    path("subscription/preference/", CreatePreferenceView.as_view(), name="subscription-preference"),
    path("subscription/cancel/", CancelSubscriptionView.as_view(), name="subscription-cancel"),
    path("webhook/", MercadoPagoWebhookView.as_view(), name="mercadopago-webhook"),
]
