import copy
import json

import pytest

DECISION_SERVICE_ID = "test/Loan Approval"
DECISION_ID = "test/loan_approval/loanApprovalDecisionService/3-2025-06-18T13:00:39.447Z"

EXECUTION_OUTPUT = {
    "insurance": {"rate": 2.5, "required": True},
    "approval": {"approved": True, "message": "Loan approved based on income and credit score"},
}

LOAN_SCHEMAS = {
    "approvalInput": {
        "type": "object",
        "properties": {
            "loan": {"$ref": "#/components/schemas/Loan"},
            "borrower": {"$ref": "#/components/schemas/Borrower"},
            "currentTime": {"type": "string", "format": "date-time"},
        },
        "required": ["loan", "borrower"],
    },
    "Loan": {
        "type": "object",
        "properties": {
            "amount": {"type": "integer"},
            "loanToValue": {"type": "number"},
            "numberOfMonthlyPayments": {"type": "integer"},
            "startDate": {"type": "string", "format": "date-time"},
        },
    },
    "Borrower": {
        "type": "object",
        "properties": {
            "SSN": {"$ref": "#/components/schemas/SSN"},
            "birthDate": {"type": "string", "format": "date-time"},
            "creditScore": {"type": "integer"},
            "firstName": {"type": "string"},
            "lastName": {"type": "string"},
            "latestBankruptcy": {"$ref": "#/components/schemas/Bankruptcy"},
            "yearlyIncome": {"type": "integer"},
            "zipCode": {"type": "string"},
        },
    },
    "SSN": {
        "type": "object",
        "properties": {
            "areaNumber": {"type": "string"},
            "groupCode": {"type": "string"},
            "serialNumber": {"type": "string"},
        },
    },
    "Bankruptcy": {
        "type": "object",
        "properties": {
            "chapter": {"type": "integer"},
            "date": {"type": "string", "format": "date-time"},
            "reason": {"type": "string"},
        },
    },
}

LOAN_INPUT = {
    "loan": {
        "amount": 1000,
        "loanToValue": 1.5,
        "numberOfMonthlyPayments": 1000,
        "startDate": "2025-06-17T14:40:26Z",
    },
    "borrower": {
        "SSN": {"areaNumber": "123", "groupCode": "45", "serialNumber": "6789"},
        "birthDate": "1990-01-01T00:00:00Z",
        "creditScore": 750,
        "firstName": "Alice",
        "lastName": "Doe",
        "latestBankruptcy": {"chapter": 11, "date": "2010-01-01T00:00:00Z", "reason": "Medical debt"},
        "yearlyIncome": 85000,
        "zipCode": "12345",
    },
    "currentTime": "2025-06-18T13:00:39Z",
}


def make_operation(operation_id, schema=None, summary=None, description=None):
    operation = {
        "operationId": operation_id,
        "summary": summary if summary is not None else operation_id,
        "description": description if description is not None else f"Execute {operation_id}",
        "responses": {"200": {"description": "Success"}},
    }
    if schema is not None:
        operation["requestBody"] = {"content": {"application/json": {"schema": schema}}}
    return operation


def make_openapi(service_name=None, decision_id=None, operations=None, schemas=None):
    """
    Builds the OpenAPI description of a decision service.

    operations maps an operation id to the 'post' object of its path, by default a single
    'approval' operation taking the loan approval input.
    """
    info = {"title": service_name or "decision service", "version": "1.0"}
    if service_name is not None:
        info["x-ibm-ads-decision-service-name"] = service_name
    if decision_id is not None:
        info["x-ibm-ads-decision-id"] = decision_id
    if operations is None:
        operations = {"approval": make_operation("approval", {"$ref": "#/components/schemas/approvalInput"})}
        if schemas is None:
            schemas = LOAN_SCHEMAS
    return {
        "openapi": "3.0.1",
        "info": info,
        "paths": {f"/{operation_id}/execute": {"post": operation} for operation_id, operation in operations.items()},
        "components": {"schemas": copy.deepcopy(schemas or {})},
    }


class FakeRuntimeClient:
    """
    In-memory decision runtime.

    services maps a deployment space to the OpenAPI description of each decision service id.
    A service id listed in failures raises the given exception when its description is fetched.
    """

    def __init__(self, services=None, metadata=None, failures=None, execution_output=None):
        self.services = services if services is not None else {}
        self.metadata = metadata if metadata is not None else {}
        self.failures = failures if failures is not None else {}
        self.execution_output = execution_output if execution_output is not None else EXECUTION_OUTPUT
        self.executions = []
        self.descriptor_fetches = []
        self.closed = False

    async def list_deployed_service_ids(self, deployment_space):
        return list(self.services.get(deployment_space, {}))

    async def fetch_service_descriptor(self, deployment_space, decision_service_id):
        self.descriptor_fetches.append((deployment_space, decision_service_id))
        if decision_service_id in self.failures:
            raise self.failures[decision_service_id]
        return copy.deepcopy(self.services[deployment_space][decision_service_id])

    async def fetch_decision_metadata(self, deployment_space, decision_id):
        return self.metadata.get(decision_id, {"map": {}})

    async def execute(self, deployment_space, decision_service_id, operation_id, decision_input):
        self.executions.append((deployment_space, decision_service_id, operation_id, decision_input))
        return json.dumps(self.execution_output, separators=(",", ":"))

    def close(self):
        self.closed = True


class IssueCollector:
    def __init__(self):
        self.issues = []

    def __call__(self, issue):
        self.issues.append(issue)

    def kinds(self):
        return [issue.kind for issue in self.issues]


@pytest.fixture
def issues():
    return IssueCollector()


@pytest.fixture
def loan_runtime():
    """A runtime with the loan approval decision service deployed in the 'development' space."""
    return FakeRuntimeClient(services={
        "development": {
            DECISION_SERVICE_ID: make_openapi("Loan Approval", DECISION_ID),
        }
    })
