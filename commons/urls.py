from django.urls import path
from .views.commons_views import liveness, readiness, time_now

urlpatterns = [
    path("health/liveness", liveness, name="health-liveness"),
    path("health/readiness", readiness, name="health-readiness"),
    path("time/now", time_now, name="time-now"),
]
