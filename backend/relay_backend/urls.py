from django.urls import path

from . import views

urlpatterns = [
    path("", views.health_check),
    path("health/", views.health_check, name="health"),
    path("stats/", views.stats, name="stats"),
    path("cleanup/", views.cleanup, name="cleanup"),
    path("reset/", views.reset, name="reset"),

    # Matcher over the live registry
    path("api/nearby-drivers/", views.nearby_drivers, name="nearby-drivers"),
]
