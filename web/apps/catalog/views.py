"""HTTP views for the catalog app.

Views are kept small: they validate requests with Pydantic, map them to
domain entities, delegate to the services from ``get_services()`` and
render the returned ``Ok``/``Err``. ``error_response`` is the single place
where an error kind becomes an HTTP status; failures are rendered as
``{"error": <message>, "kind": <KIND>}``.
"""

from django.http import HttpResponse
from pydantic import ValidationError
from rest_framework import status
from rest_framework.exceptions import ParseError
from rest_framework.response import Response
from rest_framework.views import APIView, exception_handler

from .domain import Customer, Product
from .providers import get_services
from .results import STATUS_BY_KIND, Err, ErrorKind, Ok, Result
from .schemas import CustomerDTO, FileIn, OrderDTO, ProductDTO


def error_response(err: Err) -> Response:
    return Response({"error": err.message, "kind": err.kind.value}, status=STATUS_BY_KIND[err.kind])


def api_exception_handler(exc, context):
    """DRF exception handler that renders framework errors in the API error shape."""
    response = exception_handler(exc, context)
    if response is None:
        return None
    if isinstance(exc, ParseError):
        kind = ErrorKind.PARSE
    elif response.status_code == status.HTTP_404_NOT_FOUND:
        kind = ErrorKind.NOT_FOUND
    else:
        kind = ErrorKind.VALIDATION
    detail = response.data.get("detail", response.data) if isinstance(response.data, dict) else response.data
    response.data = {"error": str(detail), "kind": kind.value}
    return response


def validate(dto_cls, data) -> Result:
    """Validate ``data`` with ``dto_cls``; the first field error becomes the message."""
    try:
        return Ok(dto_cls.model_validate(data))
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first["loc"])
        message = first["msg"].removeprefix("Value error, ")
        return Err(ErrorKind.VALIDATION, f"{where}: {message}" if where else message)


def render(result: Result, status_code: int = status.HTTP_200_OK) -> Response:
    if isinstance(result, Err):
        return error_response(result)
    value = result.value
    if isinstance(value, list):
        body = [v.to_record() if hasattr(v, "to_record") else v for v in value]
    elif hasattr(value, "to_record"):
        body = value.to_record()
    else:
        body = value
    return Response(body, status=status_code)


def render_created(result: Result, label: str) -> Response:
    """Render a create result as 201 with a ``"<label> created successfully"`` message."""
    if isinstance(result, Err):
        return error_response(result)
    body = {"message": f"{label} created successfully", **result.value.to_record()}
    return Response(body, status=status.HTTP_201_CREATED)


# ---- Customers ----

class CustomerCollectionView(APIView):
    def get(self, request):
        return render(get_services().customers.list())

    def post(self, request):
        """Create a customer.

        Returns:
            Response: 201 with a message and the stored customer, 400 on validation errors,
            409 when the email or phone is already registered.
        """
        dto = validate(CustomerDTO, request.data)
        if isinstance(dto, Err):
            return error_response(dto)
        customer = Customer(**dto.value.model_dump())
        return render_created(get_services().customers.create(customer), "Customer")


class CustomerDetailView(APIView):
    def get(self, request, partition_key: str, row_key: str):
        return render(get_services().customers.get(partition_key, row_key))

    def put(self, request, partition_key: str, row_key: str):
        dto = validate(CustomerDTO, request.data)
        if isinstance(dto, Err):
            return error_response(dto)
        customers = get_services().customers
        current = customers.get(partition_key, row_key)
        if isinstance(current, Err):
            return error_response(current)
        customer = Customer(**dto.value.model_dump(), partition_key=partition_key, row_key=row_key)
        return render(customers.update(customer))

    def delete(self, request, partition_key: str, row_key: str):
        deleted = get_services().customers.delete(partition_key, row_key)
        if isinstance(deleted, Err):
            return error_response(deleted)
        return Response({"message": "Customer deleted successfully"})


class CustomerFilesView(APIView):
    """Customer documents: list the ``uploads`` directory or upload into it."""

    def get(self, request):
        return render(get_services().documents.list())

    def post(self, request):
        dto = validate(FileIn, request.data)
        if isinstance(dto, Err):
            return error_response(dto)
        uploaded = get_services().documents.upload(dto.value.to_upload())
        if isinstance(uploaded, Err):
            return error_response(uploaded)
        return Response(
            {"message": f"File '{dto.value.file_name}' uploaded successfully", **uploaded.value},
            status=status.HTTP_201_CREATED,
        )


class CustomerFileDetailView(APIView):
    def get(self, request, file_name: str):
        downloaded = get_services().documents.download(file_name)
        if isinstance(downloaded, Err):
            return error_response(downloaded)
        response = HttpResponse(downloaded.value, content_type="application/octet-stream")
        response["Content-Disposition"] = f'attachment; filename="{file_name}"'
        return response

    def delete(self, request, file_name: str):
        deleted = get_services().documents.delete(file_name)
        if isinstance(deleted, Err):
            return error_response(deleted)
        return Response({"message": f"File '{file_name}' deleted successfully."})


# ---- Products ----

def _product_from(dto: ProductDTO, **identity) -> tuple:
    fields = dto.model_dump(exclude={"image"})
    image = dto.image.to_upload() if dto.image else None
    return Product(**fields, **identity), image


class ProductCollectionView(APIView):
    def get(self, request):
        return render(get_services().products.list())

    def post(self, request):
        dto = validate(ProductDTO, request.data)
        if isinstance(dto, Err):
            return error_response(dto)
        product, image = _product_from(dto.value)
        return render_created(get_services().products.create(product, image), "Product")


class ProductDetailView(APIView):
    def get(self, request, partition_key: str, row_key: str):
        return render(get_services().products.get(partition_key, row_key))

    def put(self, request, partition_key: str, row_key: str):
        dto = validate(ProductDTO, request.data)
        if isinstance(dto, Err):
            return error_response(dto)
        product, image = _product_from(dto.value, partition_key=partition_key, row_key=row_key)
        return render(get_services().products.update(product, image))

    def delete(self, request, partition_key: str, row_key: str):
        deleted = get_services().products.delete(partition_key, row_key)
        if isinstance(deleted, Err):
            return error_response(deleted)
        return Response({"message": "Product deleted successfully"})


# ---- Orders ----

class OrderCollectionView(APIView):
    def get(self, request):
        return render(get_services().orders.list())

    def post(self, request):
        """Place an order.

        Returns:
            Response: 201 with the stored order (snapshots and total filled
            in), 400 on validation errors, 502 when storage is unavailable.
        """
        dto = validate(OrderDTO, request.data)
        if isinstance(dto, Err):
            return error_response(dto)
        d = dto.value
        created = get_services().orders.create(d.customer_row_key, d.product_row_key, d.quantity)
        return render_created(created, "Order")


class OrderDetailView(APIView):
    def get(self, request, partition_key: str, row_key: str):
        return render(get_services().orders.get(partition_key, row_key))

    def put(self, request, partition_key: str, row_key: str):
        dto = validate(OrderDTO, request.data)
        if isinstance(dto, Err):
            return error_response(dto)
        d = dto.value
        return render(
            get_services().orders.update(partition_key, row_key, d.customer_row_key, d.product_row_key, d.quantity)
        )

    def delete(self, request, partition_key: str, row_key: str):
        deleted = get_services().orders.delete(partition_key, row_key)
        if isinstance(deleted, Err):
            return error_response(deleted)
        return Response({"message": "Order deleted successfully"})
