"""Example showing a run of a human approval procedure."""

import asyncio

from procflow import Procedure, RunService, get_repository


INVOICE_APPROVAL = {
    "id": "invoice-approval",
    "title": "Invoice approval",
    "steps": [
        {
            "id": "amount",
            "title": "Invoice amount",
            "action": "INPUT",
            "config": {"inputType": "number", "fieldLabel": "Amount", "outputVariableName": "amount"},
        },
        {
            "id": "threshold",
            "action": "VALIDATE",
            "config": {"rule": "GREATER_THAN", "target": "{{amount}}", "value": 1000},
            "routes": {"onSuccessStepId": "finance-review", "onFailureStepId": "COMPLETED"},
        },
        {
            "id": "finance-review",
            "title": "Finance review",
            "action": "APPROVAL",
            "description": "Approve invoices of {{amount}} or more",
            "assignment": {"type": "TEAM_QUEUE", "assigneeId": "team-finance"},
        },
    ],
}


async def main():
    repository = get_repository()
    await repository.save_procedure(Procedure.model_validate(INVOICE_APPROVAL))

    service = RunService(repository=repository)
    run = await service.start_run("invoice-approval", started_by="alice")
    print(f"Started run {run.id}")

    # Alice enters the amount, the threshold check runs on its own
    await service.submit_step(run.id, "amount", 2500, actor_id="alice")
    run = await service.drive(run.id)
    print(f"After threshold check: {run.status.value} ({run.current_assignee_id})")

    # Someone from the finance team picks it up
    run = await service.claim_run(run.id, "fred")
    transition = await service.submit_step(
        run.id, "finance-review", {"decision": "Approve"}, actor_id="fred"
    )
    print(f"Final status: {transition.run.status.value}")
    for entry in transition.run.log:
        print(f"  {entry.step_id}: {entry.outcome.value} {entry.output}")

    for notification in await service.notifier.inbox("alice"):
        print(f"Notification for alice: {notification.title}")


if __name__ == "__main__":
    asyncio.run(main())
