from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from zmachine.zstack.client import InstanceClient
from zmachine.zstack.config import DriverConfig
from zmachine.zstack.jobs import JobTracker
from zmachine.zstack.session import Session, hash_password
from zmachine.zstack.types import JOB_PATH, LOGIN_PATH, LOGOUT_PATH

type Reply = tuple[int, Any]


@dataclass(frozen=True, slots=True)
class Call:
    method: str
    path: str
    query: dict[str, str] = field(default_factory=dict)
    body: Any = None
    authorization: str = ""


class FakeZStack:
    """In-process stand-in for the ZStack API.

    Replies are scripted per ``(method, path)``. Each request consumes the
    next scripted reply; the last one is repeated for every later request.
    """

    def __init__(
        self,
        *,
        account: str = "admin",
        password: str = "password",
        token: str = "session-1",
    ) -> None:
        self.account = account
        self.digest = hash_password(password)
        self.token = token
        self.routes: dict[tuple[str, str], list[Reply]] = {}
        self.calls: list[Call] = []
        self.login_reply: Reply | None = None
        self.logout_status = 200

    # ─── Scripting ───────────────────────────────────────────────────

    def reply(self, method: str, path: str, *replies: Reply) -> None:
        self.routes[(method, path)] = list(replies)

    @staticmethod
    def accepted(job_uuid: str) -> Reply:
        return 202, {"location": f"http://zstack.local{JOB_PATH.format(uuid=job_uuid)}"}

    def job(self, method: str, path: str, job_uuid: str, *outcomes: Reply) -> None:
        """Answer ``method path`` with a job-accepted envelope, then script the job's polls."""
        self.reply(method, path, self.accepted(job_uuid))
        self.reply("GET", JOB_PATH.format(uuid=job_uuid), *outcomes)

    @staticmethod
    def inventory(uuid: str, state: str = "Running", ips: tuple[str, ...] = ()) -> dict[str, Any]:
        return {
            "uuid": uuid,
            "name": f"vm-{uuid}",
            "state": state,
            "hypervisorType": "KVM",
            "cpuNum": 2,
            "memorySize": 4294967296,
            "vmNics": [
                {"uuid": f"nic-{i}", "l3NetworkUuid": "l3", "ip": ip, "deviceId": i}
                for i, ip in enumerate(ips)
            ],
            "allVolumes": [{"uuid": "root-volume", "type": "Root", "size": 21474836480}],
        }

    @staticmethod
    def error(code: str, description: str) -> dict[str, Any]:
        return {"error": {"code": code, "description": description}}

    def calls_to(self, method: str, path: str) -> list[Call]:
        return [c for c in self.calls if c.method == method and c.path == path]

    # ─── Server ──────────────────────────────────────────────────────

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self._handle)
        return app

    async def _handle(self, request: web.Request) -> web.StreamResponse:
        body = await request.json() if request.can_read_body else None
        self.calls.append(Call(
            method=request.method,
            path=request.path,
            query=dict(request.query),
            body=body,
            authorization=request.headers.get("Authorization", ""),
        ))

        if request.method == "PUT" and request.path == LOGIN_PATH:
            return self._respond(self.login_reply or self._login(body))

        if request.headers.get("Authorization") != f"OAuth {self.token}":
            return self._respond((401, self.error("ID.1001", "invalid session")))

        if request.method == "DELETE" and request.path == LOGOUT_PATH.format(uuid=self.token):
            return self._respond((self.logout_status, {}))

        replies = self.routes.get((request.method, request.path))
        if not replies:
            return self._respond((404, self.error("SYS.1001", f"no route {request.path}")))
        return self._respond(replies.pop(0) if len(replies) > 1 else replies[0])

    def _login(self, body: Any) -> Reply:
        credentials = (body or {}).get("logInByAccount", {})
        if credentials.get("accountName") != self.account or credentials.get("password") != self.digest:
            return 401, self.error("ID.1000", "wrong account name or password")
        return 200, {"inventory": {"uuid": self.token, "accountUuid": "account-1"}}

    @staticmethod
    def _respond(reply: Reply) -> web.Response:
        status, payload = reply
        if isinstance(payload, str):
            return web.Response(status=status, text=payload)
        return web.json_response(payload, status=status)


@pytest.fixture
def fake() -> FakeZStack:
    return FakeZStack()


@pytest.fixture
async def server(fake: FakeZStack):
    srv = TestServer(fake.app())
    await srv.start_server()
    yield srv
    await srv.close()


@pytest.fixture
def endpoint(server: TestServer) -> str:
    return f"http://{server.host}:{server.port}"


@pytest.fixture
async def session(endpoint: str):
    s = await Session.open("admin", "password", endpoint)
    yield s
    await s.teardown()


@pytest.fixture
def tracker(session: Session) -> JobTracker:
    return JobTracker(session, interval=0.01, default_timeout=2.0)


@pytest.fixture
def instances(session: Session, tracker: JobTracker) -> InstanceClient:
    return InstanceClient(session, tracker)


@pytest.fixture
def config(endpoint: str) -> DriverConfig:
    return DriverConfig(
        account_name="admin",
        password="password",
        endpoint=endpoint,
        name="worker-1",
        image="image-1",
        instance_offering="offering-1",
        networks=("l3-1",),
    )
