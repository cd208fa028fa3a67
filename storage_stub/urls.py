from django.urls import path
from .views import get_object, archival_uploads


urlpatterns = [
	path("objects/<str:content_id>", get_object),
	path("archival", archival_uploads),
]
