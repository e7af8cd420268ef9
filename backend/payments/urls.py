from django.urls import path
from rest_framework.routers import SimpleRouter

from . import api

app_name = "payments"

router = SimpleRouter()
router.register("settlements", api.SettlementViewSet, basename="settlement")

urlpatterns = [
    path("bookings/<int:booking_id>/intent/", api.create_payment_intent, name="create_payment_intent"),
    path("confirm/", api.confirm_payment, name="confirm_payment"),
    path("webhook/", api.stripe_webhook, name="stripe_webhook"),
    path("payouts/run/", api.trigger_payout_batch, name="trigger_payout_batch"),
    path("payouts/runs/", api.payout_runs, name="payout_runs"),
    path("payouts/runs/<int:run_id>/", api.payout_run_detail, name="payout_run_detail"),
    path("commission-policy/", api.commission_policy, name="commission_policy"),
    *router.urls,
]
