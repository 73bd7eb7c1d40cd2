"""Example showing automated steps delegated to an HTTP executor.

Start an executor that accepts ``POST /execute`` with a step execution
request and answers ``{"outcome": "SUCCESS", "output": ...}``, then run::

    PROCFLOW_EXECUTOR_URL=http://localhost:8000/execute python guides/external_executor_example.py
"""

import asyncio

from procflow import Procedure, RunService, RunStatus, get_repository


SUPPLIER_CHECK = {
    "id": "supplier-check",
    "title": "Supplier check",
    "steps": [
        {
            "id": "lookup",
            "action": "HTTP_REQUEST",
            "config": {
                "url": "https://registry.example.com/suppliers/{{trigger.supplierId}}",
                "outputVariableName": "supplier",
            },
        },
        {
            "id": "compare-name",
            "action": "COMPARE",
            "config": {
                "targetA": "{{supplier.name}}",
                "targetB": "{{trigger.supplierName}}",
                "comparisonType": "fuzzy",
            },
            "routes": {"onSuccessStepId": "COMPLETED", "onFailureStepId": "manual-review"},
        },
        {
            "id": "manual-review",
            "title": "Check supplier details by hand",
            "action": "INSPECT",
            "assignment": {"type": "TEAM_QUEUE", "assigneeId": "team-procurement"},
        },
    ],
}


async def main():
    repository = get_repository()
    await repository.save_procedure(Procedure.model_validate(SUPPLIER_CHECK))

    service = RunService(repository=repository)
    run = await service.start_run(
        "supplier-check",
        started_by="intake-bot",
        trigger_context={"supplierId": "S-1042", "supplierName": "ACME Corp"},
    )
    run = await service.drive(run.id)

    if run.status == RunStatus.FLAGGED:
        print(f"Run {run.id} needs attention: {run.error_detail}")
    else:
        print(f"Run {run.id}: {run.status.value}")
    await service.runner.aclose()


if __name__ == "__main__":
    asyncio.run(main())
