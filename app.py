import os
import time
from typing import Dict
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from loguru import logger
from dotenv import load_dotenv

# Import our modules
from engine.flow import evaluate_account
from engine.accounts import (
    DEFAULT_LIMIT,
    INDUSTRY_OPTIONS,
    LIMIT_OPTIONS,
    filter_accounts,
    with_contact_counts,
)
from engine.approval import ApprovalWorkflow
from engine.state import ApprovalStatus
from clients.crm import CRMError, crm_client
from clients.idempotency import IdempotencyGuard
from clients.slack import send_notification

# Load environment variables
load_dotenv()

# Configure logging
logger.add("logs/app.log", rotation="1 day", retention="7 days", level="INFO")

# Initialize FastAPI app
app = FastAPI(
    title="RevOps Account Scoring & Quote Approval Gate",
    description="Account completeness scoring and validation-gated quote approval",
    version="1.0.0"
)

idem = IdempotencyGuard(namespace="account-create")

# One approval workflow per quote, owned by this process
workflows: Dict[str, ApprovalWorkflow] = {}
MAX_WORKFLOWS = 1000

def get_workflow(quote_id: str) -> ApprovalWorkflow:
    """Get or create the approval workflow for a quote."""
    workflow = workflows.get(quote_id)
    if workflow is None:
        workflow = ApprovalWorkflow(
            quote_id,
            fetch_quote=lambda qid: crm_client.fetch_quote(qid),
            submit_quote=lambda qid: crm_client.submit_quote_for_approval(qid),
        )
        evict_workflows()
        workflows[quote_id] = workflow
    return workflow

def evict_workflows():
    """Drop the oldest idle workflows once the registry is full."""
    for quote_id in list(workflows):
        if len(workflows) < MAX_WORKFLOWS:
            break
        if not workflows[quote_id].submission_in_flight:
            del workflows[quote_id]
            logger.info(f"Evicted approval workflow for quote {quote_id}")

async def load_workflow(quote_id: str) -> ApprovalWorkflow:
    """Get the workflow for a quote and reload it; a first load that fails is not kept."""
    is_new = quote_id not in workflows
    workflow = get_workflow(quote_id)
    await reload_workflow(workflow)
    if is_new and workflow.quote is None and workflows.get(quote_id) is workflow:
        del workflows[quote_id]
    return workflow

async def notify(title: str, message: str, variant: str):
    """Send a user notification; failures never affect the response."""
    try:
        await run_in_threadpool(send_notification, title, message, variant)
    except Exception as e:
        logger.error(f"Notification failed: {e}")

def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "message": message})

async def reload_workflow(workflow: ApprovalWorkflow):
    state = await workflow.reload()
    if state.status is ApprovalStatus.READY:
        await notify("Success", "Quote validation passed. Ready for submission.", "success")
    elif state.status is ApprovalStatus.INVALID and workflow.quote is None:
        await notify("Error", state.error_message, "error")
    return state

@app.get("/accounts")
async def list_accounts(search: str = "", limit: int = DEFAULT_LIMIT):
    """List accounts with contact counts, filtered by name or industry."""
    if limit not in LIMIT_OPTIONS:
        raise HTTPException(status_code=400, detail=f"limit must be one of {LIMIT_OPTIONS}")

    try:
        accounts = await crm_client.list_accounts(limit)
    except CRMError as e:
        return error_response(502, str(e))

    rows = filter_accounts(with_contact_counts(accounts), search)
    return {"status": "success", "count": len(rows), "accounts": rows}

@app.post("/accounts")
async def create_account(req: Request):
    """
    Create a new account.

    Expected payload:
    {
        "name": "Acme Corporation",
        "industry": "Technology",
        "event_id": "optional-dedupe-key"
    }
    """
    try:
        payload = await req.json()
    except ValueError:
        return error_response(400, "Request body must be valid JSON")
    if not isinstance(payload, dict):
        return error_response(400, "Request body must be a JSON object")

    name = payload.get("name") or ""
    if not isinstance(name, str):
        return error_response(400, "Account name must be a string")
    name = name.strip()
    industry = payload.get("industry") or None

    if not name:
        await notify("Error", "Account name is required", "error")
        return error_response(400, "Account name is required")
    if industry and industry not in INDUSTRY_OPTIONS:
        return error_response(400, f"Unknown industry: {industry}")

    key = payload.get("event_id") or f"{name.lower()}|{industry or ''}"
    if not idem.claim(key):
        logger.warning(f"Duplicate account create ignored: {key}")
        return {"status": "duplicate_ignored", "message": "Account already created"}

    try:
        account = await crm_client.create_account(name, industry)
    except CRMError as e:
        idem.release(key)
        await notify("Error", f"Failed to create account: {e}", "error")
        return error_response(502, f"Failed to create account: {e}")

    await notify("Success", "Account created successfully", "success")
    return {"status": "success", "account": account}

async def _evaluate(account_id: str):
    raw = await crm_client.fetch_account(account_id)
    result = evaluate_account(raw, account_id=account_id)
    if result.get("errors"):
        raise CRMError("; ".join(result["errors"]))
    return result

def _account_view(result) -> Dict:
    record = result["record"]
    contacts = result.get("contacts", [])
    return {
        "status": "success",
        "account_id": result.get("account_id"),
        "record": {
            "name": record.name,
            "industry": record.industry,
            "phone": record.phone,
            "website": record.website,
        },
        "score": result["score"],
        "score_label": result["score_label"],
        "score_badge": result["score_badge"],
        "score_reasons": result.get("score_reasons", []),
        "contacts": contacts,
        "contact_count": len(contacts),
    }

@app.get("/accounts/{account_id}")
async def get_account(account_id: str):
    """Account details with its completeness score."""
    try:
        result = await _evaluate(account_id)
    except CRMError as e:
        return error_response(502, str(e))
    return _account_view(result)

@app.post("/accounts/{account_id}/score")
async def calculate_score(account_id: str):
    """Recalculate an account's score from fresh CRM data."""
    try:
        result = await _evaluate(account_id)
    except CRMError as e:
        await notify("Error", f"Failed to calculate score: {e}", "error")
        return error_response(502, f"Failed to calculate score: {e}")

    await notify("Success", f"Account score calculated: {result['score_label']}", "success")
    return _account_view(result)

@app.get("/quotes/{quote_id}/approval")
async def get_approval(quote_id: str):
    """Approval state for a quote; the first access runs validation."""
    workflow = workflows.get(quote_id)
    if workflow is None:
        workflow = await load_workflow(quote_id)
    return {"quote_id": quote_id, "quote": workflow.quote, **workflow.state.to_dict()}

@app.post("/quotes/{quote_id}/reload")
async def reload_approval(quote_id: str):
    """Re-fetch and re-validate a quote."""
    workflow = await load_workflow(quote_id)
    return {"quote_id": quote_id, "quote": workflow.quote, **workflow.state.to_dict()}

@app.post("/quotes/{quote_id}/submit")
async def submit_approval(quote_id: str):
    """Submit a validated quote for approval."""
    workflow = workflows.get(quote_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail="Quote approval has not been loaded")

    accepted = await workflow.submit()
    state = workflow.state

    if accepted and state.status is ApprovalStatus.SUBMITTED:
        await notify("Success", "Quote has been submitted for approval successfully.", "success")
    elif accepted and state.status is ApprovalStatus.FAILED:
        await notify("Error", f"Failed to submit quote for approval: {state.message}", "error")

    return {"quote_id": quote_id, "accepted": accepted, **state.to_dict()}

@app.get("/health")
def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": "1.0.0",
        "services": {
            "redis": "connected" if idem.r else "disconnected",
            "crm": "configured" if crm_client.api_key else "unconfigured",
            "workflows": len(workflows)
        }
    }

# Error handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn

    # Create logs directory if it doesn't exist
    os.makedirs("logs", exist_ok=True)

    logger.info("Starting RevOps Account Scoring & Quote Approval Gate")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
