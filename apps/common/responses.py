from rest_framework import status
from rest_framework.response import Response


def api_success(data=None, message=None, status_code=status.HTTP_200_OK):
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return Response(body, status=status_code)


class EnvelopeResponseMixin:
    """Wrap successful view payloads in ``{"success": true, "data": ...}``.

    Responses built with ``api_success`` and error responses (already shaped by
    ``api_exception_handler``) pass through untouched.
    """

    def finalize_response(self, request, response, *args, **kwargs):
        if (
            isinstance(response, Response)
            and status.is_success(response.status_code)
            and response.status_code != status.HTTP_204_NO_CONTENT
            and not (isinstance(response.data, dict) and "success" in response.data)
        ):
            response.data = {"success": True, "data": response.data}
        return super().finalize_response(request, response, *args, **kwargs)
