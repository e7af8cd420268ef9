from rest_framework.routers import SimpleRouter

from .api import UserNotificationViewSet

router = SimpleRouter()
router.register("", UserNotificationViewSet, basename="notification")

urlpatterns = router.urls
