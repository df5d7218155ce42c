from django.conf import settings
from django.contrib import admin
from django.http import JsonResponse
from django.urls import path
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

from banks.views import (
    BankSearchView,
    BatchLookupView,
    BicLookupView,
    IbanLookupView,
    RegistryStatusView,
    SortCodeLookupView,
    ValidateIbanView,
)


def health_check(request):
    return JsonResponse({"status": "ok"})


schema_view = (
    SpectacularAPIView.as_view(throttle_classes=[])
    if settings.DEBUG
    else SpectacularAPIView.as_view()
)

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/banks/lookup/iban/<str:iban>/", IbanLookupView.as_view(), name="bank-lookup-iban"),
    path(
        "api/banks/lookup/sortcode/<str:code>/",
        SortCodeLookupView.as_view(),
        name="bank-lookup-sortcode",
    ),
    path("api/banks/lookup/bic/<str:bic>/", BicLookupView.as_view(), name="bank-lookup-bic"),
    path("api/banks/search/", BankSearchView.as_view(), name="bank-search"),
    path("api/banks/status/", RegistryStatusView.as_view(), name="bank-status"),
    path("api/banks/batch-lookup/", BatchLookupView.as_view(), name="bank-batch-lookup"),
    path("api/banks/validate-iban/", ValidateIbanView.as_view(), name="bank-validate-iban"),
    path("api/health/", health_check, name="health-check"),
    path("api/schema/", schema_view, name="schema"),
    path("api/docs/", SpectacularSwaggerView.as_view(url_name="schema"), name="docs"),
]
