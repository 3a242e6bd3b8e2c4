import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from qbo_mcp import service


@pytest.fixture
def fake_qbo(monkeypatch: pytest.MonkeyPatch):
    """Replace the QuickBooks query call with a recorder.

    Tests queue responses on `fake.responses`; each call pops the next one
    (or returns an empty QueryResponse) and records the IQL it was given.
    """

    class FakeQBO:
        def __init__(self) -> None:
            self.queries: List[str] = []
            self.responses: List[Dict[str, Any]] = []

        async def __call__(self, realm_id: str, access_token: str, sql: str, *, sandbox=None):
            self.queries.append(sql)
            if self.responses:
                return self.responses.pop(0)
            return {"QueryResponse": {}}

    fake = FakeQBO()
    monkeypatch.setattr(service, "qbo_query", fake)
    monkeypatch.setattr(service, "get_quickbooks_credentials", lambda realm_id=None: ("tok", realm_id or "9130"))
    return fake
