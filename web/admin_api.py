from __future__ import annotations

import hmac

import uvicorn
from fastapi import Depends
from fastapi import FastAPI
from fastapi import HTTPException
from fastapi import Query
from fastapi.responses import PlainTextResponse
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.security import HTTPBearer

from roster.errors import CollaboratorError
from roster.errors import ValidationError
from roster.errors import describe_error


CALLBACK_MISSING_PARAMS = "A 'code' and 'state' are required."
CALLBACK_OK = "Authentication successful! You may now close this window and return to Discord."
CALLBACK_FAILED = "An error occurred during authentication."


def build_admin_app(*, roster_service, cron_secret_token: str, calendar=None) -> FastAPI:
    app = FastAPI(title="Roster bot admin", docs_url=None, redoc_url=None)
    bearer = HTTPBearer(auto_error=False)
    expected_token = (cron_secret_token or "").strip()

    def require_cron_token(credentials: HTTPAuthorizationCredentials | None = Depends(bearer)) -> None:
        if not expected_token:
            raise HTTPException(status_code=503, detail="Task endpoints are disabled.")
        supplied = credentials.credentials if credentials else ""
        if not hmac.compare_digest(supplied.encode("utf-8"), expected_token.encode("utf-8")):
            print("[Admin] action=auth result=forbidden")
            raise HTTPException(status_code=403, detail="Forbidden")

    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    @app.post("/tasks/post-scheduled", dependencies=[Depends(require_cron_token)])
    async def post_scheduled():
        report = await roster_service.publish_due()
        print(f"[Admin] action=post_scheduled result=ok published={report.count} failed={len(report.failed)}")
        return {
            "published": report.count,
            "event_ids": list(report.published),
            "failed": dict(report.failed),
            "skipped": list(report.skipped),
        }

    @app.post("/tasks/send-announcement", dependencies=[Depends(require_cron_token)])
    async def send_announcement():
        try:
            event = await roster_service.create_recurring_event()
        except ValidationError as e:
            print(f"[Admin] action=send_announcement result=rejected error={describe_error(e)}")
            raise HTTPException(status_code=409, detail=e.notice) from e
        except CollaboratorError as e:
            print(f"[Admin] action=send_announcement result=error error={describe_error(e)}")
            raise HTTPException(status_code=502, detail=e.notice) from e
        print(f"[Admin] action=send_announcement result=ok event={event.event_id}")
        return {"event_id": event.event_id, "status": event.status.value, "booking_date": event.booking_date_local}

    @app.post("/tasks/send-reminders", dependencies=[Depends(require_cron_token)])
    async def send_reminders(dry_run: bool = Query(default=False)):
        report = await roster_service.send_reminders(dry_run=dry_run)
        print(f"[Admin] action=send_reminders result=ok dry_run={dry_run} sent={len(report.sent)}")
        return {
            "dry_run": report.dry_run,
            "date": report.target_date_local,
            "sent": list(report.sent),
            "skipped": dict(report.skipped),
            "previews": list(report.previews),
        }

    @app.get("/google/oauth/callback", response_class=PlainTextResponse)
    async def google_oauth_callback(code: str = "", state: str = ""):
        if not code or not state.strip().isdigit():
            return PlainTextResponse(CALLBACK_MISSING_PARAMS, status_code=400)
        if calendar is None:
            return PlainTextResponse("Calendar integration is not configured.", status_code=503)
        try:
            await calendar.exchange_code(code, int(state))
        except CollaboratorError as e:
            print(f"[Admin] action=oauth_callback result=error user={state} error={describe_error(e)}")
            return PlainTextResponse(CALLBACK_FAILED, status_code=500)
        return PlainTextResponse(CALLBACK_OK)

    return app


async def serve_admin_app(app: FastAPI, *, host: str, port: int) -> None:
    config = uvicorn.Config(app, host=host, port=int(port), log_level="warning", lifespan="off")
    server = uvicorn.Server(config)
    print(f"[Admin] serving on {host}:{port}")
    await server.serve()
