"""Builders for scripted model replies and sample inputs used across tests"""
import asyncio
import json
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from app.agents.schemas import FileEntry
from app.core.cancellation import raise_if_aborted
from app.core.config import Settings
from app.core.llm_client import LLMError

Reply = Union[str, Exception, Callable[[List[dict]], str]]


def make_settings(**overrides) -> Settings:
    values = {"SAVE_DEBUG_OUTPUT": False, "DEFAULT_MODEL": "test-model"}
    values.update(overrides)
    return Settings(**values)


def agent_of(system_prompt: str) -> str:
    for name in ("discovery", "checklist", "inspection"):
        if f"You are the {name.capitalize()} Agent" in system_prompt:
            return name
    return "other"


class ScriptedLLM:
    """Fake model gateway returning queued replies per agent and recording every call.

    A queued item may be a reply string, an exception to raise or a callable
    receiving the request messages.
    """

    def __init__(self, **replies: Iterable[Reply]):
        self.replies: Dict[str, List[Reply]] = {k: list(v) for k, v in replies.items()}
        self.calls: List[Dict[str, Any]] = []
        self.before_reply: Optional[Callable[[str, int], None]] = None

    def add(self, agent: str, *items: Reply) -> None:
        self.replies.setdefault(agent, []).extend(items)

    def calls_for(self, agent: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["agent"] == agent]

    async def chat(self, model, system_prompt, messages, abort_event: Optional[asyncio.Event] = None) -> str:
        raise_if_aborted(abort_event)
        agent = agent_of(system_prompt)
        self.calls.append({
            "agent": agent,
            "model": model,
            "messages": [dict(m) for m in messages],
        })
        if self.before_reply is not None:
            self.before_reply(agent, len(self.calls_for(agent)))
            raise_if_aborted(abort_event)

        queue = self.replies.get(agent) or []
        if not queue:
            raise LLMError(f"no scripted reply left for {agent}")
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(messages)
        return item


# --- discovery replies ------------------------------------------------------

def endpoint_dict(
    flow_name: str = "User Login",
    entry_point: str = "POST /api/login",
    sensitivity_level: str = "high",
    **overrides,
) -> dict:
    data = {
        "flow_name": flow_name,
        "purpose": f"Handles {flow_name.lower()}",
        "entry_point": entry_point,
        "input_types": ["email: string", "password: string"],
        "output_types": ["token: string"],
        "sensitivity_level": sensitivity_level,
        "mark_down": f"## Endpoint: {entry_point}\n\nCalls `authService.login` in src/services/auth.ts",
    }
    data.update(overrides)
    return data


def pick(path: str) -> str:
    return json.dumps({"status": "pick_endpoint", "file_to_read_next": path})


def tracing(endpoint: str, path: str, later: Iterable[str] = ()) -> str:
    return json.dumps({
        "status": "tracing_endpoint",
        "endpoint_being_traced": endpoint,
        "file_to_read_next": path,
        "files_to_read_later": list(later),
    })


def discovered(**kwargs) -> str:
    return "Here is the profile:\n```json\n" + json.dumps({"status": "completed", "result": endpoint_dict(**kwargs)}) + "\n```"


def not_found() -> str:
    return '{"status": "not_found"}'


# --- checklist replies ------------------------------------------------------

def control_dict(control_id: str, name: Optional[str] = None, importance: str = "high", category: str = "authentication") -> dict:
    return {
        "control_id": control_id,
        "name": name or f"Control {control_id}",
        "description": f"Description of {control_id}",
        "category": category,
        "importance": importance,
        "owasp_mapping": ["A07:2021"],
    }


def checklist_reply(
    flow_name: str = "model supplied name",
    required: Iterable[str] = ("AUTH-001",),
    recommended: Iterable[str] = ("RATE-001",),
) -> str:
    return json.dumps({
        "status": "completed",
        "result": {
            "flow_name": flow_name,
            "required_controls": [control_dict(cid, importance="critical") for cid in required],
            "recommended_controls": [control_dict(cid, category="rate_limiting") for cid in recommended],
            "references": [{"title": "OWASP ASVS", "url": "https://owasp.org/www-project-application-security-verification-standard/"}],
        },
    })


# --- inspection replies -----------------------------------------------------

def report_reply(
    flow_name: str = "model supplied name",
    implemented: Iterable[str] = ("AUTH-001",),
    missing: Iterable[str] = ("RATE-001",),
    auto_handled: Iterable[str] = (),
    vulnerabilities: int = 0,
    missing_severity: str = "high",
    summary: Optional[dict] = None,
) -> str:
    return json.dumps({
        "status": "completed",
        "result": {
            "flow_name": flow_name,
            "implemented": [
                {
                    "control_id": cid,
                    "control_name": f"Control {cid}",
                    "evidence": "bcrypt.hash(password, 12)",
                    "location": {"file": "src/services/auth.ts", "code_snippet": "await bcrypt.hash(password, 12)"},
                }
                for cid in implemented
            ],
            "missing": [
                {
                    "control_id": cid,
                    "control_name": f"Control {cid}",
                    "reason": "not found in the flow",
                    "severity": missing_severity,
                    "recommendation": "add it",
                }
                for cid in missing
            ],
            "auto_handled": [
                {
                    "control_id": cid,
                    "control_name": f"Control {cid}",
                    "handled_by": "Prisma ORM",
                    "explanation": "parameterized queries",
                }
                for cid in auto_handled
            ],
            "vulnerabilities": [
                {
                    "title": f"Issue {i}",
                    "description": "user enumeration through error messages",
                    "severity": "medium",
                    "cwe": "CWE-204",
                    "recommendation": "return a generic error",
                }
                for i in range(vulnerabilities)
            ],
            "summary": summary if summary is not None else {"total_controls": 99, "overall_severity": "high"},
        },
    })


# --- inputs ---------------------------------------------------------------

def sample_files() -> List[FileEntry]:
    files = {
        "src/routes/auth.ts": "router.post('/login', authController.login)",
        "src/controllers/auth.controller.ts": "export const login = (req, res) => authService.login(req.body)",
        "src/services/auth.ts": "export async function login(body) { return bcrypt.compare(body.password, user.hash) }",
        "src/routes/users.ts": "router.get('/users', usersController.list)",
        "package.json": '{"dependencies": {"express": "^4.18.0"}}',
    }
    return [FileEntry(path=p, content=c, size=len(c)) for p, c in files.items()]
