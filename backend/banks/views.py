from django.apps import apps
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import BankLookupError, InvalidIbanError
from .serializers import (
    BankErrorSerializer,
    BankLookupResponseSerializer,
    BankSearchResponseSerializer,
    BankSearchResultSerializer,
    BatchLookupRequestSerializer,
    BatchLookupResponseSerializer,
    BicBankSerializer,
    BicLookupResponseSerializer,
    RegistryStatusResponseSerializer,
    ValidateIbanRequestSerializer,
    ValidateIbanResponseSerializer,
    serialize_iban_lookup,
    serialize_status,
    serialize_validation,
)


def get_lookup_service():
    return apps.get_app_config("banks").lookup_service


def _error_response(exc: BankLookupError, **extra):
    payload = {"detail": str(exc), "code": exc.code}
    payload.update(extra)
    return Response(payload, status=exc.status_code)


class BankApiView(APIView):
    permission_classes = [permissions.AllowAny]


class IbanLookupView(BankApiView):
    @extend_schema(
        responses={200: BankLookupResponseSerializer, 400: BankErrorSerializer},
    )
    def get(self, request, iban):
        try:
            result = get_lookup_service().resolve_by_iban(iban)
        except InvalidIbanError as exc:
            return _error_response(exc, reason=exc.validation.error_reason)
        except BankLookupError as exc:
            return _error_response(exc)
        return Response({"success": True, **serialize_iban_lookup(result)})


class SortCodeLookupView(BankApiView):
    @extend_schema(
        responses={
            200: BankLookupResponseSerializer,
            400: BankErrorSerializer,
            404: BankErrorSerializer,
        },
    )
    def get(self, request, code):
        try:
            result = get_lookup_service().resolve_by_sort_code(code)
        except BankLookupError as exc:
            return _error_response(exc)
        if not result.found:
            return Response(
                {"detail": "Bank not found.", "code": "not_found", "bankSortCode": result.sort_code},
                status=status.HTTP_404_NOT_FOUND,
            )
        payload = serialize_iban_lookup(result)
        payload.pop("iban")
        return Response({"success": True, **payload})


class BicLookupView(BankApiView):
    @extend_schema(
        responses={
            200: BicLookupResponseSerializer,
            400: BankErrorSerializer,
            404: BankErrorSerializer,
        },
    )
    def get(self, request, bic):
        try:
            result = get_lookup_service().resolve_by_bic(bic)
        except BankLookupError as exc:
            return _error_response(exc)
        if not result.found:
            return Response(
                {"detail": "Bank with this BIC not found.", "code": "not_found", "bic": result.query},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(
            {
                "success": True,
                "found": True,
                "bic": result.query,
                "bank": BicBankSerializer(result.entry).data,
            }
        )


class BankSearchView(BankApiView):
    @extend_schema(
        parameters=[
            OpenApiParameter("query", str, description="Name, short name or city fragment."),
            OpenApiParameter("limit", int, description="Maximum number of results (capped at 50)."),
        ],
        responses={200: BankSearchResponseSerializer},
    )
    def get(self, request):
        service = get_lookup_service()
        query = request.query_params.get("query") or request.query_params.get("q") or ""
        if len(query.strip()) < service.search_min_length:
            return Response(
                {
                    "success": True,
                    "results": [],
                    "count": 0,
                    "query": query,
                    "message": f"At least {service.search_min_length} characters are required.",
                }
            )
        try:
            entries = service.search_by_name(query, request.query_params.get("limit"))
        except BankLookupError as exc:
            return _error_response(exc)
        return Response(
            {
                "success": True,
                "results": BankSearchResultSerializer(entries, many=True).data,
                "count": len(entries),
                "query": query,
            }
        )


class RegistryStatusView(BankApiView):
    @extend_schema(responses={200: RegistryStatusResponseSerializer, 500: RegistryStatusResponseSerializer})
    def get(self, request):
        registry_status = get_lookup_service().status()
        if not registry_status.available:
            return Response(
                {
                    "success": False,
                    "code": "registry_unavailable",
                    "detail": "Bank registry is unavailable.",
                    "bankDatabase": serialize_status(registry_status),
                },
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return Response({"success": True, "bankDatabase": serialize_status(registry_status)})


class BatchLookupView(BankApiView):
    @extend_schema(
        request=BatchLookupRequestSerializer,
        responses={200: BatchLookupResponseSerializer, 400: BankErrorSerializer},
    )
    def post(self, request):
        ibans = request.data.get("ibans") if hasattr(request.data, "get") else None
        try:
            results = get_lookup_service().batch_resolve_by_iban(ibans)
        except BankLookupError as exc:
            return _error_response(exc)
        return Response(
            {
                "success": True,
                "results": [serialize_iban_lookup(result, include_query=True) for result in results],
                "processed": len(results),
            }
        )


class ValidateIbanView(BankApiView):
    @extend_schema(
        request=ValidateIbanRequestSerializer,
        responses={200: ValidateIbanResponseSerializer},
    )
    def post(self, request):
        serializer = ValidateIbanRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        validation = get_lookup_service().validate(serializer.validated_data.get("iban"))
        return Response(serialize_validation(validation))
