"""
Pytest configuration and shared fixtures.
"""
import json
from datetime import date, timedelta
from urllib.parse import urlsplit, parse_qs

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from adsync.core.database import Base
from adsync.models import AdAccount
from adsync.services.meta.meta_api import MetaAPI
from adsync.services.meta.meta_fetchers import MetaFetcher
from adsync.services.meta.meta_writer import MetaWriter

ORG_ID = "org-test"
BASE_URL = "https://graph.test/v21.0"
TOKEN = "test-token"


class RecordingSleep:
    """Async sleep replacement that records requested delays"""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class FakeGraph:
    """
    Routes MockTransport requests by Graph path.

    A route is a dict body, a list of bodies/exceptions returned in turn, or a
    callable taking the request. Every request is recorded.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, path, *responses):
        self.routes[path] = list(responses) if len(responses) > 1 else responses[0]

    def path_of(self, request):
        return urlsplit(str(request.url)).path.replace("/v21.0/", "", 1)

    def params_of(self, request):
        return {k: v[0] for k, v in parse_qs(urlsplit(str(request.url)).query).items()}

    def calls(self, path):
        return [r for r in self.requests if self.path_of(r) == path]

    def __call__(self, request):
        self.requests.append(request)
        path = self.path_of(request)
        if path not in self.routes:
            return httpx.Response(404, json={"error": {"message": f"Unknown path {path}", "code": 100}})

        route = self.routes[path]
        if callable(route):
            route = route(request)
        elif isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]

        if isinstance(route, Exception):
            raise route
        if isinstance(route, httpx.Response):
            return httpx.Response(route.status_code, content=route.content, headers=route.headers)
        return httpx.Response(200, content=json.dumps(route).encode(), headers={"content-type": "application/json"})


def error_body(message, code):
    return {"error": {"message": message, "type": "OAuthException", "code": code}}


def insights_route(graph, fail_ranges=False, fail_breakdowns=()):
    """Insights endpoint: one row per day of the requested range"""
    def handler(request):
        params = graph.params_of(request)
        rng = json.loads(params["time_range"])
        since, until = date.fromisoformat(rng["since"]), date.fromisoformat(rng["until"])
        breakdowns = params.get("breakdowns")

        if breakdowns and breakdowns.split(",")[0] in fail_breakdowns:
            return httpx.Response(400, json=error_body("Invalid breakdown", 100))
        if fail_ranges and since != until:
            return httpx.Response(500, json=error_body("Please reduce the amount of data you're asking for", 1))

        rows = []
        day = since
        while day <= until:
            row = {"date_start": day.isoformat(), "date_stop": day.isoformat(), "spend": "10", "ad_id": "ad1"}
            if breakdowns:
                row.update({"age": "25-34", "gender": "female"})
            rows.append(row)
            day += timedelta(days=1)
        return {"data": rows}
    return handler


def stub_account(graph, account_id="101", **insights_kwargs):
    graph.add(f"act_{account_id}", {"id": f"act_{account_id}", "currency": "THB", "timezone_name": "Asia/Bangkok"})
    graph.add(f"act_{account_id}/campaigns", {"data": [{"id": "c1", "name": "Campaign"}]})
    graph.add(f"act_{account_id}/adsets", {"data": [{"id": "s1", "campaign_id": "c1"}]})
    graph.add(f"act_{account_id}/ads", {"data": [{"id": "ad1", "adset_id": "s1", "campaign_id": "c1"}]})
    graph.add("ad1/adcreatives", {"data": [{"id": "cr1", "image_url": "https://img/1.jpg", "body": "Hi"}]})
    graph.add(f"act_{account_id}/insights", insights_route(graph, **insights_kwargs))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def sleeps():
    return RecordingSleep()


@pytest.fixture
def graph():
    return FakeGraph()


@pytest.fixture
def api(graph, sleeps):
    return MetaAPI(
        access_token=TOKEN,
        base_url=BASE_URL,
        timeout=5,
        retry_delays=[15, 30, 60, 120],
        page_throttle=1,
        transport=httpx.MockTransport(graph),
        sleep=sleeps,
    )


@pytest.fixture
def fetcher(api):
    return MetaFetcher(api, lookback_months=18, structure_page_size=200, insights_page_size=500, creative_batch_size=2)


@pytest.fixture
def writer(db):
    return MetaWriter(db, ORG_ID)


@pytest.fixture
def make_account(db):
    """Factory for stored ad accounts"""
    counter = {"n": 0}

    def factory(**overrides):
        counter["n"] += 1
        values = {
            "org_id": ORG_ID,
            "platform_account_id": f"10{counter['n']}",
            "name": f"Account {counter['n']}",
            "is_active": True,
        }
        values.update(overrides)
        account = AdAccount(**values)
        db.add(account)
        db.commit()
        return account

    return factory
