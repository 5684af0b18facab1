"""
web/routes.py -- Jinja2 template routes for the Solo She web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same page cache, same backend factory) but return HTML instead of JSON.

Route gating (protected vs auth-only) is done once by the session middleware
(auth/middleware.py) before any handler here runs. Protected handlers still
depend on get_current_user so a misrouted anonymous request gets a redirect
to /login, never a page rendered without an identity.

Public content pages (home, blog list, blog post) are stored whole in the
page cache, keyed by path and tagged by the posts they show. They render
without the per-visitor nav so one entry serves every visitor. Draft mode
(set by /api/preview) skips the cache in both directions.

Route registration order matters. FastAPI resolves same-level paths in order:
  - GET /preview/{slug:path} is a catch-all under /preview and must stay
    below any fixed /preview/* route.

Routes:
  GET  /                        -- home: latest posts, empty state on CMS failure
  GET  /about                   -- about page
  GET  /contact                 -- contact page
  GET  /blog                    -- post list (?page=n, 12 per page), cached
  GET  /blog/{slug}             -- post detail, cached; 404 page when missing
  GET  /preview/{slug:path}     -- draft preview (draft mode only), never cached
  GET  /login                   -- login form
  POST /login                   -- handle password login (rate limited)
  GET  /signup                  -- signup form
  POST /signup                  -- handle signup (rate limited)
  POST /logout                  -- revoke session, redirect /
  GET  /dashboard               -- member dashboard (auth required)
  GET  /profile                 -- profile form (auth required)
  POST /profile                 -- handle profile edit (auth required)
  GET  /app/guides              -- member guides, CMS required (auth required)
  GET  /settings, /submit, /saved -- placeholders (auth required)
"""

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import auth_rate_limit, limiter
from auth import flows
from auth.backend import BackendUnavailable
from auth.dependencies import current_access_token, get_backend, get_current_user, try_get_current_user
from auth.flows import MSG_BACKEND_UNAVAILABLE, Failure, Outcome, Redirect, Success
from auth.middleware import login_redirect_url
from auth.models import Identity
from auth.repair import ProfileRepair
from auth.session import apply_cookies, clear_session_cookies
from core.fetcher import ContentUnavailable, fetch_post_by_slug, fetch_posts
from core.models import DRAFT_MODE_SESSION_KEY, TAG_POSTS, post_list_tags, post_tags
from profiles.service import BIO_MAX_LENGTH, load_profile, update_profile

logger = logging.getLogger("soloshe.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# Expose try_get_current_user as a Jinja2 global so layout.html can show the
# signed-in nav without every handler passing current_user explicitly.
templates.env.globals["try_get_current_user"] = try_get_current_user
router = APIRouter()

BLOG_PAGE_SIZE = 12
HOME_POST_COUNT = 3
GUIDES_PAGE_SIZE = 12

_PLACEHOLDERS = {
    "/settings": "Settings",
    "/submit": "Submit a story",
    "/saved": "Saved guides",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def draft_mode_enabled(request: Request) -> bool:
    return bool(request.session.get(DRAFT_MODE_SESSION_KEY))


def _cached_page(
    request: Request,
    key: str,
    tags: list[str],
    template_name: str,
    build_context: Callable[[], Optional[dict]],
) -> Optional[HTMLResponse]:
    """Serve key from the page cache, rendering and storing it on a miss.

    Cached pages are rendered with cacheable=True, which makes layout.html
    leave out the per-visitor nav, so one entry serves every visitor.

    build_context() returning None means "nothing to show" (e.g. unknown
    slug) and this returns None. That result is never cached, so a post
    published later appears without waiting for the TTL.
    """
    cache = request.app.state.cache
    draft = draft_mode_enabled(request)
    if not draft:
        html = cache.get(key)
        if html is not None:
            return HTMLResponse(html, headers={"X-Cache": "HIT"})
    context = build_context()
    if context is None:
        return None
    html = templates.get_template(template_name).render(
        {**context, "request": request, "cacheable": not draft, "draft_mode": draft}
    )
    if not draft:
        cache.set(key, html, tags)
    return HTMLResponse(html, headers={"X-Cache": "MISS"})


def _not_found(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "not_found.html", {}, status_code=404)


def _form_response(
    request: Request,
    outcome: Outcome,
    template_name: str,
    context: dict,
) -> Response:
    """Turn a flow outcome into an HTTP response.

    Redirect -> 303 to the target (POST/redirect/GET).
    Failure  -> the same form again with the message inline.
    Cookie writes carried by the outcome are applied either way.
    """
    if isinstance(outcome, Redirect):
        resp: Response = RedirectResponse(outcome.target, status_code=303)
        resp.headers["Cache-Control"] = "no-store"
    elif isinstance(outcome, Failure):
        resp = templates.TemplateResponse(
            request,
            template_name,
            {**context, "error_msg": outcome.message},
            status_code=outcome.status_code,
        )
    else:
        resp = templates.TemplateResponse(request, template_name, context)
    apply_cookies(resp, outcome.cookies)
    return resp


def _backend_or_failure(request: Request):
    """Return (backend, None) or (None, Failure) when the backend is down."""
    try:
        return get_backend(request), None
    except BackendUnavailable as exc:
        logger.warning("Identity backend unavailable: %s", exc.message)
        return None, Failure(MSG_BACKEND_UNAVAILABLE, status_code=503)


def _profile_error(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "profile_error.html", {}, status_code=500)


# ---------------------------------------------------------------------------
# Exception rendering -- registered on the app by asgi.py
# ---------------------------------------------------------------------------


def render_http_error(request: Request, exc: StarletteHTTPException) -> Response:
    """HTML counterpart of the API's JSON HTTPException handler."""
    if exc.status_code == 404:
        return _not_found(request)
    if exc.status_code == 401:
        return RedirectResponse(login_redirect_url(request.url.path), status_code=302)
    return templates.TemplateResponse(
        request,
        "error.html",
        {"message": "Something went wrong. Please try again."},
        status_code=exc.status_code,
    )


async def content_unavailable_handler(request: Request, exc: ContentUnavailable) -> HTMLResponse:
    """Authenticated content pages propagate CMS failures; render them as 502."""
    logger.error("Content unavailable on %s: %s", request.url.path, exc)
    return templates.TemplateResponse(
        request,
        "error.html",
        {"message": "Our guides are temporarily unavailable. Please try again shortly."},
        status_code=502,
    )


# ---------------------------------------------------------------------------
# Marketing pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    # Non-strict fetch: a CMS outage renders the home page without posts.
    return _cached_page(
        request,
        "/",
        [TAG_POSTS],
        "home.html",
        lambda: {"posts": fetch_posts(per_page=HOME_POST_COUNT)},
    )


@router.get("/about", response_class=HTMLResponse)
def about(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "about.html", {})


@router.get("/contact", response_class=HTMLResponse)
def contact(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "contact.html", {})


# ---------------------------------------------------------------------------
# Blog
# ---------------------------------------------------------------------------


@router.get("/blog", response_class=HTMLResponse)
def blog_index(request: Request, page: int = 1) -> HTMLResponse:
    page = max(1, page)
    key = "/blog" if page == 1 else f"/blog?page={page}"

    def build() -> dict:
        posts = fetch_posts(page=page, per_page=BLOG_PAGE_SIZE)
        return {
            "posts": posts,
            "page": page,
            "has_next": len(posts) == BLOG_PAGE_SIZE,
        }

    return _cached_page(request, key, post_list_tags(page), "blog.html", build)


@router.get("/blog/{slug}", response_class=HTMLResponse)
def blog_post(request: Request, slug: str) -> HTMLResponse:
    def build() -> Optional[dict]:
        post = fetch_post_by_slug(slug)
        return {"post": post} if post is not None else None

    page = _cached_page(request, f"/blog/{slug}", post_tags(slug), "post.html", build)
    return page if page is not None else _not_found(request)


@router.get("/preview/{slug:path}", response_class=HTMLResponse)
def preview_post(request: Request, slug: str) -> HTMLResponse:
    if not draft_mode_enabled(request):
        return templates.TemplateResponse(request, "preview_disabled.html", {})
    post = fetch_post_by_slug(slug.strip("/"))
    if post is None:
        return _not_found(request)
    resp = templates.TemplateResponse(request, "post.html", {"post": post, "draft_mode": True})
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Login / signup / logout
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request, redirectTo: Optional[str] = None) -> HTMLResponse:
    return templates.TemplateResponse(request, "login.html", {"redirect_to": redirectTo or ""})


@router.post("/login", response_class=HTMLResponse)
@limiter.limit(auth_rate_limit)
def login_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    redirectTo: str = Form(""),
) -> Response:
    """Handle email/password login form submission."""
    context = {"email": email, "redirect_to": redirectTo}
    backend, failure = _backend_or_failure(request)
    if failure is not None:
        return _form_response(request, failure, "login.html", context)
    outcome = flows.login(
        backend,
        request.app.state.cache,
        email,
        password,
        redirect_to=redirectTo or None,
        repair=ProfileRepair(backend),
    )
    return _form_response(request, outcome, "login.html", context)


@router.get("/signup", response_class=HTMLResponse)
def signup_form(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "signup.html", {})


@router.post("/signup", response_class=HTMLResponse)
@limiter.limit(auth_rate_limit)
def signup_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    username: str = Form(""),
) -> Response:
    """Create the identity and its profile, then land on the dashboard."""
    context = {"email": email, "username": username}
    backend, failure = _backend_or_failure(request)
    if failure is not None:
        return _form_response(request, failure, "signup.html", context)
    outcome = flows.signup(backend, request.app.state.cache, email, password, username)
    return _form_response(request, outcome, "signup.html", context)


@router.post("/logout")
def logout(request: Request) -> Response:
    """Revoke the session and send the user home.

    An unreachable backend still clears the local cookies; the server-side
    session then simply expires on its own.
    """
    try:
        backend = get_backend(request)
    except BackendUnavailable:
        outcome: Union[Redirect, Failure] = Redirect("/", cookies=clear_session_cookies())
    else:
        outcome = flows.logout(backend, request.app.state.cache, current_access_token(request))
    return _form_response(request, outcome, "error.html", {})


# ---------------------------------------------------------------------------
# Member pages (protected)
# ---------------------------------------------------------------------------


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request, user: Identity = Depends(get_current_user)) -> HTMLResponse:
    backend = get_backend(request)
    profile = load_profile(backend, user, ProfileRepair(backend))
    if profile is None:
        return _profile_error(request)
    return templates.TemplateResponse(request, "dashboard.html", {"user": user, "profile": profile})


def _profile_values(profile, username=None, full_name=None, bio=None) -> dict:
    """Form field values: what was just submitted, else what is stored."""
    return {
        "username": username if username is not None else profile.username,
        "full_name": full_name if full_name is not None else (profile.full_name or ""),
        "bio": bio if bio is not None else (profile.bio or ""),
    }


@router.get("/profile", response_class=HTMLResponse)
def profile_form(request: Request, user: Identity = Depends(get_current_user)) -> HTMLResponse:
    backend = get_backend(request)
    profile = load_profile(backend, user, ProfileRepair(backend))
    if profile is None:
        return _profile_error(request)
    return templates.TemplateResponse(
        request,
        "profile.html",
        {
            "profile": profile,
            "values": _profile_values(profile),
            "bio_max_length": BIO_MAX_LENGTH,
            "saved": request.query_params.get("saved") == "1",
        },
    )


@router.post("/profile", response_class=HTMLResponse)
def profile_post(
    request: Request,
    user: Identity = Depends(get_current_user),
    username: Optional[str] = Form(None),
    full_name: Optional[str] = Form(None),
    bio: Optional[str] = Form(None),
) -> Response:
    backend = get_backend(request)
    profile = load_profile(backend, user, ProfileRepair(backend))
    if profile is None:
        return _profile_error(request)

    outcome = update_profile(
        backend,
        request.app.state.cache,
        user.id,
        username=username,
        full_name=full_name,
        bio=bio,
    )
    if isinstance(outcome, Success):
        return RedirectResponse("/profile?saved=1", status_code=303)
    return _form_response(
        request,
        outcome,
        "profile.html",
        {
            "profile": profile,
            "values": _profile_values(profile, username, full_name, bio),
            "bio_max_length": BIO_MAX_LENGTH,
        },
    )


@router.get("/app/guides", response_class=HTMLResponse)
def guides(request: Request, user: Identity = Depends(get_current_user)) -> HTMLResponse:
    # strict: ContentUnavailable propagates to content_unavailable_handler
    posts = fetch_posts(per_page=GUIDES_PAGE_SIZE, strict=True)
    return templates.TemplateResponse(request, "guides.html", {"posts": posts})


@router.get("/settings", response_class=HTMLResponse)
@router.get("/submit", response_class=HTMLResponse)
@router.get("/saved", response_class=HTMLResponse)
def placeholder(request: Request, user: Identity = Depends(get_current_user)) -> HTMLResponse:
    title = _PLACEHOLDERS.get(request.url.path, "Coming soon")
    return templates.TemplateResponse(request, "placeholder.html", {"title": title})
