# Municipal Citizen-Services Portal
# FastAPI + MongoDB + Jinja2

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from pymongo import MongoClient
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from . import views
from .auth import (AuthError, AuthService, SessionContext, get_current_profile, get_session,
                   require_role)
from .config import (BASE_DIR, CORS_ORIGINS, JWT_EXPIRE_HOURS, MONGODB_DB, MONGODB_URL,
                     PORTAL_NAME, SESSION_COOKIE)
from .models import (Amenity, AmenityForm, AmenityType, Announcement, AnnouncementCategory,
                     AnnouncementForm, Complaint, ComplaintCategory, ComplaintCreate,
                     ComplaintPriority, ComplaintStatus, ComplaintTriage, DashboardStats,
                     Profile, Role, SignIn, SignUp, TokenResponse)
from .routing import SCREEN_TEMPLATES, Screen
from .store import BackendError, Store, executor
from .views import ViewScope

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App & Globals
# ---------------------------------------------------------------------------
app = FastAPI(title=PORTAL_NAME)
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "style-src 'self'; "
            "img-src 'self' data:; "
            "form-action 'self'; "
            "frame-ancestors 'none'"
        )
        return response

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                        content={"detail": "Internal server error"})


templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
templates.env.filters["label"] = lambda v: str(getattr(v, "value", v) or "").replace("_", " ").title()
templates.env.filters["status_label"] = lambda v: str(getattr(v, "value", v)).replace("_", " ").upper()
templates.env.filters["date"] = lambda d: d.strftime("%b %d, %Y") if d else ""
templates.env.globals.update(
    portal_name=PORTAL_NAME,
    complaint_categories=list(ComplaintCategory),
    complaint_priorities=list(ComplaintPriority),
    complaint_statuses=list(ComplaintStatus),
    amenity_types=list(AmenityType),
    announcement_categories=list(AnnouncementCategory),
)
app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")

# ---------------------------------------------------------------------------
# Startup / Shutdown
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup_db(app)
    yield
    app.state.db_client.close()
    logger.info("Database connection closed")

app.router.lifespan_context = lifespan

async def startup_db(app: FastAPI):
    client = MongoClient(MONGODB_URL)
    store = Store(client[MONGODB_DB])
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(executor, store.ensure_indexes)
    app.state.db_client = client
    app.state.store = store
    app.state.auth = AuthService(store)
    logger.info("Connected to %s (database %s)", MONGODB_URL, MONGODB_DB)

# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_store(request: Request) -> Store:
    return request.app.state.store

def get_auth(request: Request) -> AuthService:
    return request.app.state.auth

async def get_view_scope():
    scope = ViewScope()
    try:
        yield scope
    finally:
        scope.close()

def _raise_form_error(result: views.FormResult, what: str):
    if result.missing:
        raise HTTPException(status_code=404, detail=f"{what} not found")
    raise HTTPException(status_code=500, detail=result.error or "Request was cancelled")

# ---------------------------------------------------------------------------
# AUTH ENDPOINTS
# ---------------------------------------------------------------------------
@app.post("/auth/register", response_model=TokenResponse)
@limiter.limit("3/minute")
async def register(request: Request, data: SignUp, auth: AuthService = Depends(get_auth)):
    try:
        profile = await auth.sign_up(data)
        token = await auth.sign_in(data.email, data.password)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except BackendError as e:
        raise HTTPException(status_code=500, detail=e.message)
    return TokenResponse(access_token=token, profile=profile)

@app.post("/auth/login", response_model=TokenResponse)
@limiter.limit("5/minute")
async def login(request: Request, form: SignIn, auth: AuthService = Depends(get_auth)):
    try:
        token = await auth.sign_in(form.email, form.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=e.message)
    session = await SessionContext(auth, token).open()
    session.close()
    if session.profile is None:
        raise HTTPException(status_code=401, detail="Profile not found")
    return TokenResponse(access_token=token, profile=session.profile)

@app.get("/auth/me", response_model=Profile)
async def get_me(profile: Profile = Depends(get_current_profile)):
    return profile

@app.post("/auth/logout")
async def logout(session: SessionContext = Depends(get_session)):
    session.sign_out()
    return {"detail": "Logged out successfully"}

# ---------------------------------------------------------------------------
# COMPLAINT ENDPOINTS
# ---------------------------------------------------------------------------
@app.get("/complaints", response_model=List[Complaint])
async def list_complaints(profile: Profile = Depends(get_current_profile),
                          store: Store = Depends(get_store),
                          scope: ViewScope = Depends(get_view_scope)):
    if profile.role is Role.ADMIN:
        return await views.load_all_complaints(store, scope)
    return await views.load_citizen_complaints(store, profile.id, scope)

@app.post("/complaints", response_model=Complaint)
async def create_complaint(data: ComplaintCreate,
                           profile: Profile = Depends(require_role(Role.CITIZEN)),
                           store: Store = Depends(get_store),
                           scope: ViewScope = Depends(get_view_scope)):
    result = await views.submit_complaint(store, profile.id, data, scope)
    if not result.ok:
        _raise_form_error(result, "Complaint")
    return result.record

@app.put("/complaints/{complaint_id}", response_model=Complaint)
async def triage_complaint(complaint_id: str, triage: ComplaintTriage,
                           profile: Profile = Depends(require_role(Role.ADMIN)),
                           store: Store = Depends(get_store),
                           scope: ViewScope = Depends(get_view_scope)):
    result = await views.update_complaint(store, complaint_id, triage, scope)
    if not result.ok:
        _raise_form_error(result, "Complaint")
    logger.info("Admin %s set complaint %s to %s", profile.email, complaint_id, triage.status.value)
    return result.record

# ---------------------------------------------------------------------------
# AMENITY ENDPOINTS
# ---------------------------------------------------------------------------
@app.get("/amenities", response_model=List[Amenity])
async def list_amenities(profile: Profile = Depends(get_current_profile),
                         store: Store = Depends(get_store),
                         scope: ViewScope = Depends(get_view_scope)):
    return await views.load_amenities(store, scope)

@app.post("/amenities", response_model=Amenity)
async def create_amenity(form: AmenityForm,
                         profile: Profile = Depends(require_role(Role.ADMIN)),
                         store: Store = Depends(get_store),
                         scope: ViewScope = Depends(get_view_scope)):
    result = await views.save_amenity(store, form, scope=scope)
    if not result.ok:
        _raise_form_error(result, "Amenity")
    return result.record

@app.put("/amenities/{amenity_id}", response_model=Amenity)
async def update_amenity(amenity_id: str, form: AmenityForm,
                         profile: Profile = Depends(require_role(Role.ADMIN)),
                         store: Store = Depends(get_store),
                         scope: ViewScope = Depends(get_view_scope)):
    result = await views.save_amenity(store, form, amenity_id, scope)
    if not result.ok:
        _raise_form_error(result, "Amenity")
    return result.record

@app.delete("/amenities/{amenity_id}")
async def remove_amenity(amenity_id: str,
                         profile: Profile = Depends(require_role(Role.ADMIN)),
                         store: Store = Depends(get_store),
                         scope: ViewScope = Depends(get_view_scope)):
    if not await views.delete_amenity(store, amenity_id, scope):
        raise HTTPException(status_code=404, detail="Amenity not found")
    logger.info("Admin %s deleted amenity %s", profile.email, amenity_id)
    return {"detail": "Amenity deleted"}

# ---------------------------------------------------------------------------
# ANNOUNCEMENT ENDPOINTS
# ---------------------------------------------------------------------------
@app.get("/announcements", response_model=List[Announcement])
async def list_announcements(profile: Profile = Depends(get_current_profile),
                             store: Store = Depends(get_store),
                             scope: ViewScope = Depends(get_view_scope)):
    if profile.role is Role.ADMIN:
        return await views.load_all_announcements(store, scope)
    return await views.load_active_announcements(store, scope)

@app.post("/announcements", response_model=Announcement)
async def create_announcement(form: AnnouncementForm,
                              profile: Profile = Depends(require_role(Role.ADMIN)),
                              store: Store = Depends(get_store),
                              scope: ViewScope = Depends(get_view_scope)):
    result = await views.save_announcement(store, form, profile.id, scope=scope)
    if not result.ok:
        _raise_form_error(result, "Announcement")
    return result.record

@app.put("/announcements/{announcement_id}", response_model=Announcement)
async def update_announcement(announcement_id: str, form: AnnouncementForm,
                              profile: Profile = Depends(require_role(Role.ADMIN)),
                              store: Store = Depends(get_store),
                              scope: ViewScope = Depends(get_view_scope)):
    result = await views.save_announcement(store, form, profile.id, announcement_id, scope)
    if not result.ok:
        _raise_form_error(result, "Announcement")
    return result.record

@app.post("/announcements/{announcement_id}/toggle", response_model=Announcement)
async def toggle_announcement(announcement_id: str,
                              profile: Profile = Depends(require_role(Role.ADMIN)),
                              store: Store = Depends(get_store),
                              scope: ViewScope = Depends(get_view_scope)):
    result = await views.toggle_announcement_by_id(store, announcement_id, scope)
    if not result.ok:
        _raise_form_error(result, "Announcement")
    return result.record

@app.delete("/announcements/{announcement_id}")
async def remove_announcement(announcement_id: str,
                              profile: Profile = Depends(require_role(Role.ADMIN)),
                              store: Store = Depends(get_store),
                              scope: ViewScope = Depends(get_view_scope)):
    if not await views.delete_announcement(store, announcement_id, scope):
        raise HTTPException(status_code=404, detail="Announcement not found")
    logger.info("Admin %s deleted announcement %s", profile.email, announcement_id)
    return {"detail": "Announcement deleted"}

# ---------------------------------------------------------------------------
# ADMIN OVERVIEW
# ---------------------------------------------------------------------------
@app.get("/admin/stats", response_model=DashboardStats)
async def admin_stats(profile: Profile = Depends(require_role(Role.ADMIN)),
                      store: Store = Depends(get_store),
                      scope: ViewScope = Depends(get_view_scope)):
    stats = await views.load_dashboard_stats(store, scope)
    if stats is None:
        raise HTTPException(status_code=500, detail="Could not load stats")
    return stats

# ---------------------------------------------------------------------------
# HEALTH
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "healthy", "system": PORTAL_NAME,
            "timestamp": datetime.now(timezone.utc)}

# ---------------------------------------------------------------------------
# PAGE ROUTES (serve Jinja2 templates)
# ---------------------------------------------------------------------------
CITIZEN_TABS = ("complaints", "amenities", "announcements")
ADMIN_TABS = ("overview", "complaints", "amenities", "announcements")


def render(request: Request, template: str, status_code: int = 200, **context) -> HTMLResponse:
    response = templates.TemplateResponse(request, template, context, status_code=status_code)
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
    return response

def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)

def form_error_message(exc: ValidationError) -> str:
    messages = []
    for err in exc.errors():
        field = str(err["loc"][-1]).replace("_", " ").capitalize() if err["loc"] else "Form"
        messages.append(f"{field} {err['msg'].removeprefix('Value error, ')}")
    return "; ".join(messages)

def _page_profile(session: SessionContext, role: Role) -> Optional[Profile]:
    if session.profile is not None and session.profile.role is role:
        return session.profile
    return None


async def citizen_context(store: Store, profile: Profile, scope: ViewScope,
                          tab: Optional[str], new: bool = False) -> dict:
    tab = tab if tab in CITIZEN_TABS else "complaints"
    ctx = {"tab": tab, "show_form": new, "form": {}, "error": None}
    if tab == "complaints":
        ctx["complaints"] = await views.load_citizen_complaints(store, profile.id, scope)
    elif tab == "amenities":
        ctx["amenities"] = await views.load_amenities(store, scope)
    else:
        ctx["announcements"] = await views.load_active_announcements(store, scope)
    return ctx

async def admin_context(store: Store, scope: ViewScope, tab: Optional[str],
                        edit: Optional[str] = None, new: bool = False) -> dict:
    tab = tab if tab in ADMIN_TABS else "overview"
    ctx = {"tab": tab, "selected": None, "show_form": new, "form": {}, "error": None}
    if tab == "overview":
        ctx["stats"] = await views.load_dashboard_stats(store, scope)
    elif tab == "complaints":
        ctx["complaints"] = await views.load_all_complaints(store, scope)
        ctx["selected"] = views.find_selected(ctx["complaints"], edit)
    elif tab == "amenities":
        ctx["amenities"] = await views.load_amenities(store, scope)
        ctx["selected"] = views.find_selected(ctx["amenities"], edit)
    else:
        ctx["announcements"] = await views.load_all_announcements(store, scope)
        ctx["selected"] = views.find_selected(ctx["announcements"], edit)
    if ctx["selected"] is not None:
        ctx["show_form"] = True
        ctx["form"] = ctx["selected"].model_dump(mode="json")
    return ctx


@app.get("/", response_class=HTMLResponse, include_in_schema=False)
async def index(request: Request, tab: Optional[str] = None, edit: Optional[str] = None,
                new: bool = False, session: SessionContext = Depends(get_session),
                store: Store = Depends(get_store), scope: ViewScope = Depends(get_view_scope)):
    screen = session.screen
    ctx = {}
    if screen is Screen.CITIZEN_DASHBOARD:
        ctx = await citizen_context(store, session.profile, scope, tab, new)
    elif screen is Screen.ADMIN_DASHBOARD:
        ctx = await admin_context(store, scope, tab, edit, new)
    return render(request, SCREEN_TEMPLATES[screen], profile=session.profile, **ctx)


@app.get("/login", response_class=HTMLResponse, include_in_schema=False)
async def login_page(request: Request):
    return render(request, "login.html")

@app.post("/login", response_class=HTMLResponse, include_in_schema=False)
@limiter.limit("5/minute")
async def login_submit(request: Request, auth: AuthService = Depends(get_auth)):
    form = await request.form()
    email = str(form.get("email", ""))
    try:
        token = await auth.sign_in(email, str(form.get("password", "")))
    except AuthError as e:
        return render(request, "login.html", status_code=401, error=e.message, email=email)
    response = redirect("/")
    response.set_cookie(SESSION_COOKIE, token, httponly=True, samesite="lax",
                        max_age=JWT_EXPIRE_HOURS * 3600)
    return response

@app.get("/register", response_class=HTMLResponse, include_in_schema=False)
async def register_page(request: Request):
    return render(request, "register.html", form={})

@app.post("/register", response_class=HTMLResponse, include_in_schema=False)
@limiter.limit("3/minute")
async def register_submit(request: Request, auth: AuthService = Depends(get_auth)):
    form = dict(await request.form())
    try:
        data = SignUp(**form)
        await auth.sign_up(data)
        token = await auth.sign_in(data.email, data.password)
    except ValidationError as e:
        return render(request, "register.html", status_code=400,
                      error=form_error_message(e), form=form)
    except AuthError as e:
        return render(request, "register.html", status_code=400, error=e.message, form=form)
    except BackendError as e:
        return render(request, "register.html", status_code=500, error=e.message, form=form)
    response = redirect("/")
    response.set_cookie(SESSION_COOKIE, token, httponly=True, samesite="lax",
                        max_age=JWT_EXPIRE_HOURS * 3600)
    return response

@app.post("/logout", include_in_schema=False)
async def logout_page(session: SessionContext = Depends(get_session)):
    session.sign_out()
    response = redirect("/")
    response.delete_cookie(SESSION_COOKIE)
    return response


# Citizen pages
@app.post("/file-complaint", response_class=HTMLResponse, include_in_schema=False)
async def file_complaint(request: Request, session: SessionContext = Depends(get_session),
                         store: Store = Depends(get_store),
                         scope: ViewScope = Depends(get_view_scope)):
    profile = _page_profile(session, Role.CITIZEN)
    if profile is None:
        return redirect("/")
    form = dict(await request.form())
    try:
        result = await views.submit_complaint(store, profile.id, ComplaintCreate(**form), scope)
        error = result.error
    except ValidationError as e:
        error = form_error_message(e)
    if error is None:
        return redirect("/?tab=complaints")
    ctx = await citizen_context(store, profile, scope, "complaints", new=True)
    ctx.update(form=form, error=error)
    return render(request, "citizen_dashboard.html", status_code=400, profile=profile, **ctx)


# Admin pages
@app.post("/triage/{complaint_id}", response_class=HTMLResponse, include_in_schema=False)
async def triage_page(request: Request, complaint_id: str,
                      session: SessionContext = Depends(get_session),
                      store: Store = Depends(get_store),
                      scope: ViewScope = Depends(get_view_scope)):
    profile = _page_profile(session, Role.ADMIN)
    if profile is None:
        return redirect("/")
    form = dict(await request.form())
    try:
        result = await views.update_complaint(store, complaint_id, ComplaintTriage(**form), scope)
        error = result.error
    except ValidationError as e:
        error = form_error_message(e)
    if error is None:
        return redirect("/?tab=complaints")
    ctx = await admin_context(store, scope, "complaints", edit=complaint_id)
    ctx.update(form=form, error=error)
    return render(request, "admin_dashboard.html", status_code=400, profile=profile, **ctx)

@app.post("/manage/amenities", response_class=HTMLResponse, include_in_schema=False)
async def amenity_page(request: Request, session: SessionContext = Depends(get_session),
                       store: Store = Depends(get_store),
                       scope: ViewScope = Depends(get_view_scope)):
    profile = _page_profile(session, Role.ADMIN)
    if profile is None:
        return redirect("/")
    form = dict(await request.form())
    selected_id = form.pop("record_id", None) or None
    try:
        result = await views.save_amenity(store, AmenityForm(**form), selected_id, scope)
        error = result.error
    except ValidationError as e:
        error = form_error_message(e)
    if error is None:
        return redirect("/?tab=amenities")
    ctx = await admin_context(store, scope, "amenities", edit=selected_id, new=True)
    ctx.update(form=form, error=error)
    return render(request, "admin_dashboard.html", status_code=400, profile=profile, **ctx)

@app.post("/manage/announcements", response_class=HTMLResponse, include_in_schema=False)
async def announcement_page(request: Request, session: SessionContext = Depends(get_session),
                            store: Store = Depends(get_store),
                            scope: ViewScope = Depends(get_view_scope)):
    profile = _page_profile(session, Role.ADMIN)
    if profile is None:
        return redirect("/")
    form = dict(await request.form())
    selected_id = form.pop("record_id", None) or None
    # Unchecked checkboxes are not submitted
    form["is_active"] = "is_active" in form
    try:
        result = await views.save_announcement(store, AnnouncementForm(**form), profile.id,
                                                selected_id, scope)
        error = result.error
    except ValidationError as e:
        error = form_error_message(e)
    if error is None:
        return redirect("/?tab=announcements")
    ctx = await admin_context(store, scope, "announcements", edit=selected_id, new=True)
    ctx.update(form=form, error=error)
    return render(request, "admin_dashboard.html", status_code=400, profile=profile, **ctx)

@app.post("/manage/announcements/{announcement_id}/toggle", include_in_schema=False)
async def toggle_page(announcement_id: str, session: SessionContext = Depends(get_session),
                      store: Store = Depends(get_store),
                      scope: ViewScope = Depends(get_view_scope)):
    if _page_profile(session, Role.ADMIN) is not None:
        await views.toggle_announcement_by_id(store, announcement_id, scope)
    return redirect("/?tab=announcements")


DELETABLE = {
    "amenities": ("amenity", views.delete_amenity),
    "announcements": ("announcement", views.delete_announcement),
}

@app.get("/manage/{kind}/{record_id}/delete", response_class=HTMLResponse, include_in_schema=False)
async def confirm_delete_page(request: Request, kind: str, record_id: str,
                              session: SessionContext = Depends(get_session),
                              store: Store = Depends(get_store),
                              scope: ViewScope = Depends(get_view_scope)):
    profile = _page_profile(session, Role.ADMIN)
    if profile is None or kind not in DELETABLE:
        return redirect("/")
    row = await views.load_record(store, kind, record_id, scope)
    if row is None:
        return redirect(f"/?tab={kind}")
    name = row.get("name") or row.get("title")
    return render(request, "confirm_delete.html", profile=profile, kind=kind,
                  noun=DELETABLE[kind][0], record_id=record_id, record_name=name)

@app.post("/manage/{kind}/{record_id}/delete", include_in_schema=False)
async def delete_page(request: Request, kind: str, record_id: str,
                      session: SessionContext = Depends(get_session),
                      store: Store = Depends(get_store),
                      scope: ViewScope = Depends(get_view_scope)):
    if _page_profile(session, Role.ADMIN) is None or kind not in DELETABLE:
        return redirect("/")
    form = await request.form()
    if form.get("confirm") == "yes":
        _, delete = DELETABLE[kind]
        await delete(store, record_id, scope)
    return redirect(f"/?tab={kind}")


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
