import json
import logging
import sys
from datetime import datetime
from typing import Optional
from fastapi import FastAPI, HTTPException, Body, Depends, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from dotenv import load_dotenv

from utils.environment import log_environment_config, get_tool_name, get_debug_mode
from utils.api_gateway import ApiGateway, GatewayError, ConfigurationError, NetworkError, ServerError
from utils.models import (
    ApproverDashboardResp,
    CalendarResp,
    EmployeeDashboardResp,
    LoginReq,
    LoginResp,
    RequestReq,
    RequestStatus,
    StatusReq,
    User,
    UserReq,
    VacationRequest,
)
from utils.session_registry import Session, session_registry
from utils.team_calendar import calendar_events, events_by_day

load_dotenv()


# --- App & Logging ---
app = FastAPI(
    title="Vacation Desk",
    version="0.1.0",
    description="Vacation request management backed by a Google Sheets Apps Script endpoint.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logging.basicConfig(
    level=logging.DEBUG if get_debug_mode() else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(get_tool_name())

def _ensure_logger():
    desired_level = logging.DEBUG if get_debug_mode() else logging.INFO
    logger.setLevel(desired_level)
    if not logger.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        logger.addHandler(h)
    logger.propagate = False

_ensure_logger()


# --- Config / gateway ---

gateway: ApiGateway | None = None
log_environment_config(logger)


@app.on_event("startup")
async def _startup():
    global gateway
    if gateway is None:
        gateway = ApiGateway()
    logger.info("Sheet gateway ready (configured=%s)", bool(gateway.url))

@app.on_event("shutdown")
async def _shutdown():
    session_registry.clear()
    if gateway:
        await gateway.aclose()
        logger.info("Sheet gateway closed")
    logger.info("All sessions closed")


# --- Error mapping ---

_GATEWAY_STATUS = {
    ConfigurationError: 500,
    NetworkError: 503,
}


@app.exception_handler(GatewayError)
async def _gateway_error(request: Request, exc: GatewayError):
    status_code = _GATEWAY_STATUS.get(type(exc), 502)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})

# Starlette resolves handlers by walking the exception MRO, so these subclasses
# of ValueError get 502 whatever order the handlers are registered in.
@app.exception_handler(ValidationError)
@app.exception_handler(json.JSONDecodeError)
async def _bad_upstream_payload(request: Request, exc: ValueError):
    logger.error("Unusable payload from sheet endpoint: %s", exc)
    return JSONResponse(status_code=502, content={"detail": "Unexpected response from the sheet endpoint"})

@app.exception_handler(LookupError)
async def _not_found(request: Request, exc: LookupError):
    return JSONResponse(status_code=404, content={"detail": str(exc.args[0]) if exc.args else "Not found"})

@app.exception_handler(PermissionError)
async def _forbidden(request: Request, exc: PermissionError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})

@app.exception_handler(ValueError)
async def _bad_request(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# --- Session helpers ---

def current_session(x_session_id: Optional[str] = Header(None)) -> Session:
    session = session_registry.get(x_session_id)
    if session is None or not session.auth.is_authenticated:
        raise HTTPException(status_code=401, detail="Not logged in")
    return session

def approver_session(session: Session = Depends(current_session)) -> Session:
    if not session.auth.is_approver:
        raise HTTPException(status_code=403, detail="Approver role required")
    return session


# --- Routes: auth ---

@app.post("/login", response_model=LoginResp, summary="Log in and open a session")
async def login(req: LoginReq = Body(...)):
    session = session_registry.create(gateway)
    try:
        user = await session.login(req.email, req.password)
    except ServerError as e:
        session_registry.drop(session.id)
        raise HTTPException(status_code=401, detail=str(e))
    except Exception:
        session_registry.drop(session.id)
        raise
    return LoginResp(session_id=session.id, user=user, users=session.auth.users)


@app.post("/logout", status_code=204, summary="Close the current session")
async def logout(x_session_id: Optional[str] = Header(None)):
    if x_session_id:
        session_registry.drop(x_session_id)


# --- Routes: employee management ---

@app.get("/users", response_model=list[User], summary="List employees")
async def list_users(session: Session = Depends(approver_session)):
    return session.auth.users


@app.post("/users", response_model=User, status_code=201, summary="Add an employee")
async def add_user(req: UserReq = Body(...), session: Session = Depends(approver_session)):
    return await session.auth.add_user(req.name, req.email, req.role, req.password, req.total_leave)


@app.put("/users/{user_id}", response_model=User, summary="Edit an employee")
async def edit_user(user_id: int, req: UserReq = Body(...), session: Session = Depends(approver_session)):
    existing = session.auth.find_user(user_id)
    if existing is None:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    total = req.total_leave if req.total_leave is not None else existing.annual_leave.total
    return await session.auth.edit_user(user_id, req.name, req.email, req.role, total)


@app.delete("/users/{user_id}", status_code=204, summary="Delete an employee and all their requests")
async def delete_user(user_id: int, session: Session = Depends(approver_session)):
    await session.auth.delete_user(user_id)
    await session.requests.remove_requests_by_user(user_id)


# --- Routes: requests ---

@app.get("/requests", response_model=list[VacationRequest], summary="List vacation requests")
async def list_requests(session: Session = Depends(current_session)):
    if session.auth.is_approver:
        return session.requests.requests
    return session.requests.user_requests


@app.post("/requests", response_model=VacationRequest, status_code=201, summary="Submit a vacation request")
async def submit_request(req: RequestReq = Body(...), session: Session = Depends(current_session)):
    return await session.requests.submit_request(req.start_date, req.end_date, req.type, req.comment)


@app.put("/requests/{request_id}", response_model=VacationRequest, summary="Edit a vacation request")
async def revise_request(request_id: int, req: RequestReq = Body(...), session: Session = Depends(current_session)):
    if not session.auth.is_approver and session.requests.get(request_id).user_id != session.auth.user.id:
        raise HTTPException(status_code=403, detail="Employees can only edit their own requests")
    return await session.requests.revise_request(request_id, req.start_date, req.end_date, req.type, req.comment)


@app.post("/requests/{request_id}/status", response_model=VacationRequest, summary="Approve or reject a request")
async def update_request_status(request_id: int, req: StatusReq = Body(...), session: Session = Depends(approver_session)):
    return await session.requests.update_request(request_id, req.status, req.comment)


@app.delete("/requests/{request_id}", status_code=204, summary="Delete a vacation request")
async def delete_request(request_id: int, session: Session = Depends(current_session)):
    await session.requests.delete_request(request_id)


# --- Routes: dashboards ---

@app.get("/dashboard/employee", response_model=EmployeeDashboardResp, summary="My balance and requests")
async def employee_dashboard(session: Session = Depends(current_session)):
    return EmployeeDashboardResp(
        balance=session.auth.user.annual_leave,
        requests=session.requests.user_requests,
    )


@app.get("/dashboard/approver", response_model=ApproverDashboardResp, summary="Pending and filtered team requests")
async def approver_dashboard(status: Optional[RequestStatus] = None, session: Session = Depends(approver_session)):
    return ApproverDashboardResp(
        pending=session.requests.pending_requests,
        requests=session.requests.filter_by_status(status),
    )


@app.get("/calendar", response_model=CalendarResp, summary="Team absences for a month")
async def team_calendar(year: Optional[int] = None, month: Optional[int] = None, session: Session = Depends(current_session)):
    today = datetime.now()
    year = year or today.year
    month = month or today.month
    if not 1 <= year <= 9999:
        raise HTTPException(status_code=400, detail="year must be between 1 and 9999")
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="month must be between 1 and 12")
    events = calendar_events(session.requests.requests)
    return CalendarResp(year=year, month=month, days=events_by_day(events, year, month))
