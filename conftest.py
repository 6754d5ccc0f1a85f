"""Shared pytest fixtures for Window Man packages."""

import pytest


@pytest.fixture
def sample_identity_data():
    """Sample form payload as posted by the web client."""
    return {
        "leadId": "lead-001",
        "email": "  Jane.Doe@Example.COM ",
        "phone": "(555) 123-4567",
        "firstName": "Jane",
        "lastName": "Doe",
        "city": "Fort Lauderdale",
        "state": "FL",
        "zipCode": "33301-1234",
    }


@pytest.fixture
def sample_scoring_rows():
    """Sample leads for batch scoring."""
    return [
        {
            "lead_id": "lead-001",
            "lead_source": "ebook_download",
            "intent_tier": 1,
            "has_email": True,
        },
        {
            "lead_id": "lead-002",
            "lead_source": "fair_price_calc",
            "intent_tier": 3,
            "has_email": True,
            "has_phone": True,
            "has_address": True,
        },
        {
            "lead_id": "lead-003",
            "lead_source": "ai_quote_scanner",
            "has_email": True,
            "has_phone": True,
            "has_address": True,
            "has_project_details": True,
        },
    ]
