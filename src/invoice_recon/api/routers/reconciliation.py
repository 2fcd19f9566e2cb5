from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from loguru import logger
from pydantic import TypeAdapter, ValidationError
from ..deps import BatchResponse, MatchRequest, ParseRequest, TextBatchRequest
from ...models.invoice import BatchCounts, CandidateRecord, InvoiceItem, MatchResult
from ...models.ledger import LedgerEntry
from ...services.candidate_builder import build_candidate
from ...services.export import to_csv
from ...services.matcher import create_matcher
from ...services.pipeline import ReconciliationPipeline, get_pipeline, summarize

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])

_ledger_adapter = TypeAdapter(list[LedgerEntry])


@router.post("/parse", response_model=CandidateRecord)
async def parse_text(req: ParseRequest):
    """Extract date, amount, unit price and product from recognized invoice text"""
    return build_candidate(req.text)


@router.post("/match", response_model=MatchResult)
async def match_candidate(req: MatchRequest):
    """
    Reconcile one candidate record against the ledger sent with the request.

    Tolerances default to MATCH_RELATIVE_TOLERANCE / MATCH_ABSOLUTE_TOLERANCE
    and can be overridden per request.
    """
    matcher = create_matcher(
        relative_tolerance=req.relative_tolerance,
        absolute_tolerance=req.absolute_tolerance,
    )
    return matcher.match(req.candidate, req.ledger)


@router.post("/texts", response_model=BatchResponse)
async def reconcile_texts(req: TextBatchRequest, pipeline: ReconciliationPipeline = Depends(get_pipeline)):
    """
    Reconcile a batch of already-recognized invoice texts.

    Example request:
    {
        "texts": [{"source_name": "inv-001.jpg", "text": "Product\\nWidget\\nTotal: 150"}],
        "ledger": [{"date": "2024-05-01", "product": "Widget", "qty": 3, "price": 50, "revenue": 150, "region": "Riyadh"}]
    }
    """
    logger.info("Text batch received", items=len(req.texts), ledger_size=len(req.ledger))
    try:
        items = await pipeline.process_texts(
            [(t.source_name, t.text) for t in req.texts],
            req.ledger,
        )
    except Exception as e:
        logger.error(f"Text batch failed: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))
    return BatchResponse(items=items, counts=summarize(items))


@router.post("/images", response_model=BatchResponse)
async def reconcile_images(
    files: list[UploadFile] = File(...),
    ledger: str = Form("[]"),
    pipeline: ReconciliationPipeline = Depends(get_pipeline),
):
    """
    Recognize and reconcile uploaded invoice images.

    Accepts multipart/form-data with one or more "files" parts and a "ledger"
    form field holding the ledger as a JSON array. A file the recognition
    engine can't read ends up as an item with status "error"; it doesn't fail
    the request.
    """
    try:
        entries = _ledger_adapter.validate_json(ledger)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    uploads = [(f.filename or "unnamed", await f.read()) for f in files]
    logger.info("Image batch received", items=len(uploads), ledger_size=len(entries))

    try:
        items = await pipeline.process_images(uploads, entries)
    except Exception as e:
        logger.error(f"Image batch failed: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))
    return BatchResponse(items=items, counts=summarize(items))


@router.get("/items", response_model=list[InvoiceItem])
async def list_items(pipeline: ReconciliationPipeline = Depends(get_pipeline)):
    """All items in submission order"""
    return list(pipeline.items)


@router.get("/items/{item_id}", response_model=InvoiceItem)
async def get_item(item_id: str, pipeline: ReconciliationPipeline = Depends(get_pipeline)):
    item = pipeline.get(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


@router.delete("/items")
async def clear_items(pipeline: ReconciliationPipeline = Depends(get_pipeline)):
    """Forget every item (refused while a batch is running)"""
    removed = len(pipeline.items)
    try:
        pipeline.clear()
    except RuntimeError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"cleared": removed}


@router.get("/summary", response_model=BatchCounts)
async def summary(pipeline: ReconciliationPipeline = Depends(get_pipeline)):
    """Matched / unmatched / processing counts over all items"""
    return pipeline.counts()


@router.get("/export")
async def export_csv(pipeline: ReconciliationPipeline = Depends(get_pipeline)):
    """Download reconciliation results as CSV"""
    return Response(
        content=to_csv(pipeline.items),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="ocr_results.csv"'},
    )
