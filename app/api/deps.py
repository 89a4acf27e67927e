"""Shared dependencies - services wired onto app.state in the lifespan."""

from fastapi import Request

from app.services import BillingService, QualtricsService, Storage, SurveyWorkflow, QuotaLedger


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_ledger(request: Request) -> QuotaLedger:
    return request.app.state.ledger


def get_workflow(request: Request) -> SurveyWorkflow:
    return request.app.state.workflow


def get_qualtrics(request: Request) -> QualtricsService:
    return request.app.state.qualtrics


def get_billing(request: Request) -> BillingService:
    return request.app.state.billing
