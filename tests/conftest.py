import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fakes import API_KEY, make_store_app
from pinger.store import StatusStoreClient


@pytest.fixture()
def store_app() -> FastAPI:
    return make_store_app()


@pytest.fixture()
def http(store_app: FastAPI):
    with TestClient(store_app) as client:
        yield client


@pytest.fixture()
def store(http) -> StatusStoreClient:
    """Real HTTP client talking to the in-memory backend."""
    return StatusStoreClient("http://testserver/api/v1", API_KEY, http=http)


@pytest.fixture()
def logger() -> logging.Logger:
    return logging.getLogger("pinger.tests")
