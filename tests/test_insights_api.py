"""
Tests for the insights endpoints.
"""
import asyncio

import pytest
from fastapi.testclient import TestClient

from main import app
from finsight.api.v1.deps import get_categorizer_service, get_learning_store
from finsight.db.database import AsyncSessionLocal
from finsight.db.models import MerchantMemory as MerchantMemoryRow
from finsight.ml.metrics import metrics

API = "/api/v1/insights"


@pytest.fixture
def client():
    metrics.reset()
    with TestClient(app) as client:
        yield client
        # Leave nothing behind for the shutdown flush or the next test.
        get_learning_store().reset()
        get_categorizer_service().reset_rules()
        metrics.reset()


def tx(id, amount, date, description="", merchant=None, category="Other", direction="debit"):
    return {
        "id": id,
        "amount": amount,
        "date": date,
        "description": description,
        "merchant": merchant,
        "category": category,
        "direction": direction,
    }


def food_series(amounts):
    return [
        tx(f"f{i}", amount, f"2024-06-{i + 1:02d}T12:00:00", category="Food")
        for i, amount in enumerate(amounts)
    ]


def test_categorize_feeds_merchant_memory(client):
    payload = {"transactions": [
        tx("1", 450, "2024-06-01T12:00:00", "Swiggy order", "Swiggy"),
        tx("2", 250, "2024-06-02T09:00:00", "Uber ride", "Uber"),
        tx("3", 100, "2024-06-02T10:00:00", "lunch"),
    ]}

    response = client.post(f"{API}/categorize", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert [t["category"] for t in data["transactions"]] == ["Food", "Transport", "Food"]
    assert data["learned_merchants"] == 2


def test_categorize_without_learning(client):
    payload = {
        "transactions": [tx("1", 450, "2024-06-01T12:00:00", "Swiggy order", "Swiggy")],
        "learn": False,
    }

    response = client.post(f"{API}/categorize", json=payload)

    assert response.json()["transactions"][0]["category"] == "Food"
    assert response.json()["learned_merchants"] == 0


def test_categorize_rejects_non_positive_amount(client):
    payload = {"transactions": [tx("1", 0, "2024-06-01T12:00:00", "Swiggy order")]}
    assert client.post(f"{API}/categorize", json=payload).status_code == 422


def test_classify(client):
    response = client.post(f"{API}/classify", json={"text": "Netflix subscription", "amount": 649})

    assert response.status_code == 200
    data = response.json()
    assert data["category"] == "Entertainment"
    assert data["learned"] is False
    assert data["keywords"][0]["keyword"] == "netflix"


def test_classify_empty_text_is_other(client):
    data = client.post(f"{API}/classify", json={"text": ""}).json()
    assert data["category"] == "Other"
    assert data["score"] == 0.0


def test_taught_merchant_wins_classification(client):
    response = client.post(f"{API}/learning/teach", json={"merchant": "Swiggy", "category": "Shopping"})
    assert response.status_code == 200
    assert response.json()["confidence"] == 1.0

    data = client.post(f"{API}/classify", json={"text": "Swiggy order", "merchant": "SWIGGY"}).json()
    assert data["category"] == "Shopping"
    assert data["learned"] is True


def test_teach_rejects_blank_merchant(client):
    response = client.post(f"{API}/learning/teach", json={"merchant": "   ", "category": "Food"})
    assert response.status_code == 422


def test_teach_rejects_unknown_category(client):
    response = client.post(f"{API}/learning/teach", json={"merchant": "Swiggy", "category": "Groceries"})
    assert response.status_code == 422


def test_anomalies(client):
    response = client.post(
        f"{API}/anomalies", json={"transactions": food_series([100, 120, 110, 90, 105, 600])}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "sufficient_data"
    assert [a["id"] for a in data["anomalies"]] == ["unusual-f5"]
    assert len(data["messages"]) == 1


def test_anomalies_with_insufficient_data(client):
    data = client.post(f"{API}/anomalies", json={"transactions": food_series([100, 200])}).json()
    assert data["anomalies"] == []
    assert data["status"] == "insufficient_data"
    assert data["statusMessage"]


def test_patterns_window(client):
    payload = {
        "transactions": [
            tx("old", 1000, "2024-04-01T12:00:00", category="Shopping"),
            tx("new", 300, "2024-06-30T12:00:00", category="Food"),
        ],
        "window_days": 30,
    }

    data = client.post(f"{API}/patterns", json=payload).json()

    assert data["total_spending"] == 300
    assert [r["category"] for r in data["concentration_ratios"]] == ["Food"]


def test_patterns_rejects_bad_window(client):
    response = client.post(f"{API}/patterns", json={"transactions": [], "window_days": 0})
    assert response.status_code == 422


def test_recommendations(client):
    payload = {"transactions": food_series([500] * 5) + [
        tx("salary", 2000, "2024-06-01T09:00:00", direction="credit"),
    ]}

    data = client.post(f"{API}/recommendations", json=payload).json()

    ids = [r["id"] for r in data]
    assert "high-category-Food" in ids
    assert "improve-savings-rate" in ids
    assert len(data) <= 8


def test_report(client):
    data = client.post(
        f"{API}/report", json={"transactions": food_series([100] * 19 + [5000])}
    ).json()

    assert data["risk_score"] == 15
    assert len(data["anomalies"]) == 1
    assert data["habits"]["most_frequent_category"] == "Food"


def test_budgets(client):
    data = client.post(f"{API}/budgets", json={"transactions": food_series([100] * 5)}).json()
    assert [b["category"] for b in data] == ["Food"]


def test_custom_keyword(client):
    response = client.post(f"{API}/rules/keywords", json={"category": "Food", "keyword": "Chai Point"})
    assert response.status_code == 200
    assert "chai point" in response.json()["keywords"]

    assert client.post(f"{API}/classify", json={"text": "chai point"}).json()["category"] == "Food"

    client.post(f"{API}/rules/keywords", json={"category": "Food", "keyword": "chai point", "remove": True})
    assert client.post(f"{API}/classify", json={"text": "chai point"}).json()["category"] == "Other"


def test_learning_flush_reset_and_reload(client):
    client.post(f"{API}/learning/teach", json={"merchant": "Amazon", "category": "Shopping"})

    assert client.post(f"{API}/learning/flush").json() == {"status": "flushed", "merchants": 1}

    client.post(f"{API}/learning/reset")
    assert client.get(f"{API}/learning/stats").json()["total_merchants"] == 0

    assert client.post(f"{API}/learning/reload").json()["merchants"] == 1
    merchants = client.get(f"{API}/learning/merchants").json()
    assert [m["merchant_key"] for m in merchants] == ["amazon"]


def test_corrupt_learning_rows_return_503(client):
    async def corrupt():
        async with AsyncSessionLocal() as session:
            session.add(MerchantMemoryRow(
                MerchantKey="broken", Merchant="Broken", Category="Groceries", Confidence=1.0, Frequency=3,
            ))
            await session.commit()

    asyncio.run(corrupt())

    response = client.post(f"{API}/learning/reload")

    assert response.status_code == 503
    assert response.json()["error"]["status_code"] == 503
    assert response.json()["error"]["path"] == f"{API}/learning/reload"


def test_status_reports_metrics(client):
    client.post(f"{API}/anomalies", json={"transactions": food_series([100] * 19 + [5000])})

    data = client.get(f"{API}/status").json()

    assert data["status"] == "operational"
    assert data["metrics"]["operations"] == {"anomaly_detection": 1}
    assert data["metrics"]["anomalies_detected"] == 1
    assert data["configuration"]["min_samples"] == 5


def test_patterns_rejects_overflowing_amount(client):
    body = '{"transactions": [{"id": "1", "amount": 1e400, "date": "2024-06-01T12:00:00"}]}'

    response = client.post(
        f"{API}/patterns", content=body, headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 422


def test_categorize_rejects_oversized_merchant(client):
    payload = {"transactions": [tx("1", 100, "2024-06-01T12:00:00", "order", "x" * 10_000)]}
    assert client.post(f"{API}/categorize", json=payload).status_code == 422
