"""FastAPI application exposing library transfer as a JSON API."""

import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from tunetransfer import __version__
from tunetransfer.async_transfer import AsyncTransferService
from tunetransfer.errors import AuthExpired, ProviderError
from tunetransfer.library import export_library, fetch_library, library_counts, load_restore_snapshot
from tunetransfer.models import TRANSFER_ORDER, AccountRef, ItemType, Provider
from tunetransfer.providers import connect, create_adapter
from tunetransfer.providers.base import CatalogAdapter
from tunetransfer.report import TransferReport
from tunetransfer.storage import SessionStore
from tunetransfer.transfer_service import ProgressCallback, TransferOptions
from tunetransfer.utils.credentials import min_interval_for
from tunetransfer.utils.logger import get_logger


logger = get_logger("tunetransfer.web")

# Global state
storage: SessionStore = None
active_tasks: Dict[str, Dict] = {}
runners: Dict[str, AsyncTransferService] = {}
reports: Dict[str, TransferReport] = {}
libraries: Dict[str, Dict] = {}


class Side(str, Enum):
    SOURCE = "source"
    TARGET = "target"


class LoginRequest(BaseModel):
    provider: Provider
    token: str
    user_id: Optional[str] = None


class TransferRequest(BaseModel):
    item_types: Optional[List[ItemType]] = None
    dry_run: bool = False
    fallback_to_first_result: bool = False
    update_existing: bool = True


class RestoreRequest(BaseModel):
    export: Dict
    item_types: Optional[List[ItemType]] = None
    dry_run: bool = False


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global storage
    storage = SessionStore(os.environ.get("TUNETRANSFER_DB_PATH", "data/sessions.db"))
    await storage.init_db()
    yield


app = FastAPI(
    title="tunetransfer",
    description="Transfer favorites and playlists between Tidal, Qobuz and Spotify accounts",
    version=__version__,
    lifespan=lifespan
)


# Helper functions
def _adapter_options(provider: Provider) -> Dict:
    """Provider settings taken from the environment."""
    options = {"min_interval": min_interval_for(os.environ, provider.value)}
    if provider == Provider.TIDAL:
        options["country_code"] = os.environ.get("TIDAL_COUNTRY_CODE")
    elif provider == Provider.QOBUZ:
        options["app_id"] = os.environ.get("QOBUZ_APP_ID")
    return options


def build_adapter(account: AccountRef) -> CatalogAdapter:
    """Adapter for a stored account. The stored user id skips re-authentication."""
    return create_adapter(
        account.provider,
        account.credential,
        user_id=account.user_id,
        **_adapter_options(account.provider)
    )


def login_adapter(provider: Provider, token: str, user_id: Optional[str] = None) -> CatalogAdapter:
    """Authenticate a new credential."""
    return connect(provider, token, user_id=user_id, **_adapter_options(provider))


async def require_session(side: Side) -> AccountRef:
    account = await storage.get_session(side.value)
    if not account:
        raise HTTPException(status_code=401, detail=f"No {side.value} account connected")
    return account


async def get_library(side: Side, account: AccountRef, refresh: bool = False) -> Dict:
    """Cached snapshot of a side's favorites, fetched on first use."""
    if refresh or side.value not in libraries:
        adapter = build_adapter(account)
        try:
            libraries[side.value] = await run_in_threadpool(fetch_library, adapter)
        except AuthExpired as e:
            await storage.delete_session(side.value)
            libraries.pop(side.value, None)
            raise HTTPException(status_code=401, detail=f"Session expired, please log in again: {e}")
    return libraries[side.value]


def _running_task_id() -> Optional[str]:
    for task_id, task in active_tasks.items():
        if task["status"] in ("starting", "running"):
            return task_id
    return None


# Sessions
@app.get("/sessions")
async def get_sessions():
    """Connection status of both sides."""
    sessions = {s["side"]: s for s in await storage.list_sessions()}
    return {
        "source": sessions.get("source"),
        "target": sessions.get("target"),
        "both_connected": "source" in sessions and "target" in sessions,
    }


@app.post("/sessions/{side}")
async def login(side: Side, body: LoginRequest):
    """Authenticate an account for a side, store it and fetch its library."""
    token = body.token.strip()
    if not token:
        raise HTTPException(status_code=400, detail="Token is required")

    try:
        adapter = await run_in_threadpool(login_adapter, body.provider, token, body.user_id)
    except AuthExpired as e:
        raise HTTPException(status_code=401, detail=f"Invalid token: {e}")
    except ProviderError as e:
        raise HTTPException(status_code=400, detail=f"Could not connect to {body.provider.value}: {e}")

    account = adapter.account
    await storage.save_session(side.value, account)
    libraries.pop(side.value, None)
    library = await get_library(side, account)

    logger.info(f"Connected {side.value} account: {account.provider.value} user {account.user_id}")
    return {
        "side": side.value,
        "provider": account.provider.value,
        "user_id": account.user_id,
        "counts": library_counts(library),
    }


@app.delete("/sessions/{side}")
async def logout(side: Side):
    """Forget the account of a side."""
    await storage.delete_session(side.value)
    libraries.pop(side.value, None)
    return {"side": side.value, "connected": False}


# Library
@app.get("/library/{side}")
async def get_library_stats(side: Side, refresh: bool = False):
    """Per-type favorite counts of a side."""
    account = await require_session(side)
    library = await get_library(side, account, refresh=refresh)
    return {
        "side": side.value,
        "provider": account.provider.value,
        "counts": library_counts(library),
    }


@app.get("/library/{side}/export")
async def export_side_library(side: Side):
    """Export document of a side's library."""
    account = await require_session(side)
    library = await get_library(side, account)
    return export_library(library, account.provider)


# Transfers
@app.post("/transfer/start")
async def start_transfer(body: TransferRequest, background_tasks: BackgroundTasks):
    """Start a transfer from the source account into the target account."""
    source = await storage.get_session(Side.SOURCE.value)
    target = await storage.get_session(Side.TARGET.value)
    if not source or not target:
        raise HTTPException(status_code=400, detail="Both accounts must be connected")
    if _running_task_id():
        raise HTTPException(status_code=409, detail="A transfer is already running")

    options = TransferOptions(
        dry_run=body.dry_run,
        fallback_to_first_result=body.fallback_to_first_result,
        update_existing=body.update_existing
    )
    task_id = _create_task("transfer", body.item_types, options)
    background_tasks.add_task(run_transfer_task, task_id, source, target, body.item_types, options)
    return {"task_id": task_id}


@app.post("/restore")
async def start_restore(body: RestoreRequest, background_tasks: BackgroundTasks):
    """Restore an export document into the target account."""
    target = await storage.get_session(Side.TARGET.value)
    if not target:
        raise HTTPException(status_code=400, detail="Target account must be connected")
    if _running_task_id():
        raise HTTPException(status_code=409, detail="A transfer is already running")

    options = TransferOptions(dry_run=body.dry_run)
    task_id = _create_task("restore", body.item_types, options)
    background_tasks.add_task(
        run_transfer_task, task_id, None, target, body.item_types, options, body.export
    )
    return {"task_id": task_id}


def _create_task(operation: str, item_types: Optional[List[ItemType]], options: TransferOptions) -> str:
    task_id = str(uuid.uuid4())
    active_tasks[task_id] = {
        "status": "starting",
        "operation": operation,
        "item_types": [t.value for t in item_types] if item_types else [t.value for t in TRANSFER_ORDER],
        "dry_run": options.dry_run,
        "started_at": datetime.now().isoformat(),
        "progress": {},
        "report": None,
        "error": None,
        "stop_requested": False,
    }
    return task_id


async def run_transfer_task(
    task_id: str,
    source: Optional[AccountRef],
    target: AccountRef,
    item_types: Optional[List[ItemType]],
    options: TransferOptions,
    export: Optional[Dict] = None
):
    """Run a transfer or restore in the background."""
    task = active_tasks[task_id]
    task["status"] = "running"

    # Progress callback - just update in-memory dict (no async calls from thread)
    def on_progress(progress: Dict):
        task["progress"] = progress

    try:
        target_adapter = build_adapter(target)
        if export is not None:
            source_adapter = None
            library = load_restore_snapshot(target_adapter, export)
        else:
            source_adapter = build_adapter(source)
            library = await get_library(Side.SOURCE, source)

        runner = AsyncTransferService(
            source_adapter,
            target_adapter,
            progress_callback=ProgressCallback(on_progress),
            options=options
        )
        runners[task_id] = runner
        if task["stop_requested"]:
            runner.cancel()

        report = await runner.run(library, item_types)
        reports[task_id] = report
        task["report"] = report.to_dict()
        task["status"] = "stopped" if report.state == "stopped" else "completed"

    except AuthExpired as e:
        logger.error(f"Transfer {task_id} stopped, authentication expired: {e}")
        if e.report is not None:
            reports[task_id] = e.report
            task["report"] = e.report.to_dict()
        task["status"] = "auth_expired"
        task["error"] = str(e)
        for side, account in ((Side.SOURCE, source), (Side.TARGET, target)):
            if account and account.provider.value == e.provider:
                await storage.delete_session(side.value)
                libraries.pop(side.value, None)

    except HTTPException as e:
        # Raised by get_library when the source session expired
        task["status"] = "auth_expired"
        task["error"] = e.detail

    except Exception as e:
        logger.error(f"Transfer {task_id} failed: {e}")
        task["status"] = "failed"
        task["error"] = str(e)

    finally:
        task["completed_at"] = datetime.now().isoformat()
        runners.pop(task_id, None)


def _get_task(task_id: str) -> Dict:
    if task_id not in active_tasks:
        raise HTTPException(status_code=404, detail="Task not found")
    return active_tasks[task_id]


@app.get("/transfer/{task_id}")
async def get_transfer_status(task_id: str):
    """Status, progress and report summary of a task."""
    task = _get_task(task_id)
    return {"task_id": task_id, **task}


@app.post("/transfer/{task_id}/stop")
async def stop_transfer(task_id: str):
    """Ask a running task to stop before its next item."""
    task = _get_task(task_id)
    if task["status"] not in ("starting", "running"):
        return {"task_id": task_id, "status": task["status"]}

    task["stop_requested"] = True
    runner = runners.get(task_id)
    if runner:
        runner.cancel()
    return {"task_id": task_id, "status": "stopping"}


@app.get("/transfer/{task_id}/report", response_class=PlainTextResponse)
async def get_failure_report(task_id: str):
    """Failure Report text of a finished task."""
    task = _get_task(task_id)
    report = reports.get(task_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not available yet")
    return report.format_failures(operation=task["operation"])
