"""
Dashboard page shells.

Each page is a minimal HTML document that names the JSON endpoint its
client code reads. The session gate decides who reaches these routes.
"""

from html import escape

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

from app.config import settings
from app.services.captcha import CAPTCHA_HEADER

router = APIRouter(prefix="/billing", tags=["pages"], include_in_schema=False)

SIGN_IN_ENDPOINT = "/api/auth/sign-in/email"

# Turnstile drops its token into a hidden "cf-turnstile-response" input; the
# sign-in route reads it from the CAPTCHA header and takes a JSON body.
SIGN_IN_SCRIPT = """<script>
document.getElementById("sign-in").addEventListener("submit", async (event) => {
  event.preventDefault();
  const form = event.currentTarget;
  const captcha = form.querySelector('[name="cf-turnstile-response"]');
  const response = await fetch(form.dataset.endpoint, {
    method: "POST",
    credentials: "same-origin",
    headers: {
      "content-type": "application/json",
      "%(captcha_header)s": captcha ? captcha.value : "",
    },
    body: JSON.stringify({email: form.email.value, password: form.password.value}),
  });
  if (response.ok) {
    window.location.assign("/billing");
    return;
  }
  const body = await response.json().catch(() => ({}));
  document.getElementById("sign-in-error").textContent = body.error || "Sign in failed";
  if (window.turnstile) {
    window.turnstile.reset();
  }
});
</script>
"""


def render_page(title: str, data_endpoint: str | None, body: str = "") -> HTMLResponse:
    source = (
        f'<main id="app" data-endpoint="{escape(data_endpoint)}"></main>'
        if data_endpoint
        else '<main id="app"></main>'
    )
    html = (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '<meta charset="utf-8">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"<title>{escape(title)} | {escape(settings.api_title)}</title>\n"
        "</head>\n"
        "<body>\n"
        f"<h1>{escape(title)}</h1>\n"
        f"{source}\n"
        f"{body}"
        "</body>\n"
        "</html>\n"
    )
    return HTMLResponse(html)


@router.get("")
async def dashboard_page() -> HTMLResponse:
    return render_page("Overview", "/api/billing/stats")


@router.get("/login")
async def login_page() -> HTMLResponse:
    widget = ""
    if settings.turnstile_site_key:
        widget = (
            '<script src="https://challenges.cloudflare.com/turnstile/v0/api.js" async defer>'
            "</script>\n"
            f'<div class="cf-turnstile" data-sitekey="{escape(settings.turnstile_site_key)}"></div>\n'
        )
    form = (
        f'<form id="sign-in" data-endpoint="{SIGN_IN_ENDPOINT}">\n'
        '<input type="email" name="email" autocomplete="username" required>\n'
        '<input type="password" name="password" autocomplete="current-password" required>\n'
        f"{widget}"
        '<p id="sign-in-error" role="alert"></p>\n'
        '<button type="submit">Sign in</button>\n'
        "</form>\n"
        + SIGN_IN_SCRIPT % {"captcha_header": CAPTCHA_HEADER}
    )
    return render_page("Sign in", None, form)


@router.get("/users")
async def users_page() -> HTMLResponse:
    return render_page("Users", "/api/billing/users")


@router.get("/users/{user_id}")
async def user_detail_page(user_id: str) -> HTMLResponse:
    return render_page("User", f"/api/billing/users/{user_id}")


@router.get("/gallery")
async def gallery_page() -> HTMLResponse:
    return render_page("Gallery", "/api/billing/gallery")


@router.get("/gallery/{photo_id}")
async def photo_detail_page(photo_id: str) -> HTMLResponse:
    return render_page("Photo", f"/api/billing/gallery/{photo_id}")


@router.get("/storage")
async def storage_page() -> HTMLResponse:
    return render_page("Storage", "/api/billing/storage")


@router.get("/activity")
async def activity_page() -> HTMLResponse:
    return render_page("Activity", "/api/billing/activity")


@router.get("/analytics")
async def analytics_page() -> HTMLResponse:
    return render_page("Analytics", "/api/billing/stats")
