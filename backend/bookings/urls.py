"""URL routing for the bookings API."""

from rest_framework.routers import SimpleRouter

from .api import BookingViewSet

app_name = "bookings"

router = SimpleRouter()
router.register("", BookingViewSet, basename="booking")

urlpatterns = router.urls
