"""Invoice router."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.invoice import InvoiceRequest, InvoiceView
from ..services.invoice_service import InvoiceService

router = APIRouter(prefix="/v1/invoice", tags=["invoice"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


@router.post("/get", response_model=InvoiceView)
async def get_invoice(request: InvoiceRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Assemble the invoice for a booking."""
    invoice = await InvoiceService(db).assemble_invoice(request.booking_id)
    return JSONResponse(status_code=200, content=invoice.model_dump(mode="json"))
