import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from sqlalchemy.orm import Session

from database import Base, SessionLocal, engine
from envelopes import BalanceLimitError
from schemas import (
    AccountIn,
    AutoFundIn,
    CategoryIn,
    FundCategoryIn,
    MonthlyBudgetIn,
    MoveMoneyIn,
    PaycheckIn,
    PaycheckReceivedIn,
    PlanningItemIn,
    TimelineRequest,
    TransactionIn,
    TransferFundsIn,
)
from schedule import local_today
from services import (
    AccountService,
    CategoryService,
    FundingService,
    PaycheckService,
    PlanningItemService,
    TransactionReconciler,
    TransactionService,
)
from storage import KeyValueStore, SQLStore
from timeline import UrgencyBoard, item_timelines

logger = logging.getLogger(__name__)

app = FastAPI(title="Envelope Budget")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_store(db: Session = Depends(get_db)) -> KeyValueStore:
    return SQLStore(db)


@app.on_event("startup")
def startup_event():
    Base.metadata.create_all(engine)


def _dump(records) -> list[dict]:
    return [record.model_dump(mode="json") for record in records]


@app.get("/api/summary")
def api_summary(store: KeyValueStore = Depends(get_store)):
    funding = FundingService(store)
    return {
        "to_be_allocated": funding.calculate_to_be_allocated(),
        "categories": _dump(funding.categories()),
        "accounts": _dump(funding.accounts()),
    }


@app.get("/api/categories")
def list_categories(store: KeyValueStore = Depends(get_store)):
    return _dump(CategoryService(store).list_all())


@app.post("/api/categories", status_code=201)
def create_category(data: CategoryIn, store: KeyValueStore = Depends(get_store)):
    try:
        category = CategoryService(store).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return category.model_dump(mode="json")


@app.put("/api/categories/{category_id}")
def rename_category(
    category_id: int, data: CategoryIn, store: KeyValueStore = Depends(get_store)
):
    try:
        category = CategoryService(store).rename(category_id, data.name)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return category.model_dump(mode="json")


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(category_id: int, store: KeyValueStore = Depends(get_store)):
    try:
        CategoryService(store).delete(category_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.put("/api/categories/{category_id}/monthly-budget")
def set_monthly_budget(
    category_id: int, data: MonthlyBudgetIn, store: KeyValueStore = Depends(get_store)
):
    service = FundingService(store)
    try:
        service.set_monthly_budget_for_category(category_id, data.amount)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return service.monthly_budget()


@app.get("/api/categories/{category_id}/report")
def category_report(
    category_id: int,
    start: date,
    end: date,
    store: KeyValueStore = Depends(get_store),
):
    if start > end:
        raise HTTPException(status_code=400, detail="Start date must be before end date")
    report = FundingService(store).get_category_report(category_id, start, end)
    return report.model_dump(mode="json")


@app.get("/api/accounts")
def list_accounts(store: KeyValueStore = Depends(get_store)):
    return _dump(AccountService(store).list_all())


@app.post("/api/accounts", status_code=201)
def create_account(data: AccountIn, store: KeyValueStore = Depends(get_store)):
    return AccountService(store).create(data).model_dump(mode="json")


@app.put("/api/accounts/{account_id}")
def update_account(
    account_id: int, data: AccountIn, store: KeyValueStore = Depends(get_store)
):
    try:
        account = AccountService(store).set_balance(account_id, data.balance)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return account.model_dump(mode="json")


@app.delete("/api/accounts/{account_id}", status_code=204)
def delete_account(account_id: int, store: KeyValueStore = Depends(get_store)):
    try:
        AccountService(store).delete(account_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/planning-items")
def list_planning_items(store: KeyValueStore = Depends(get_store)):
    return _dump(PlanningItemService(store).list_all())


@app.post("/api/planning-items", status_code=201)
def create_planning_item(data: PlanningItemIn, store: KeyValueStore = Depends(get_store)):
    try:
        item = PlanningItemService(store).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return item.model_dump(mode="json")


@app.put("/api/planning-items/{item_id}")
def update_planning_item(
    item_id: int, data: PlanningItemIn, store: KeyValueStore = Depends(get_store)
):
    try:
        item = PlanningItemService(store).update(item_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return item.model_dump(mode="json")


@app.delete("/api/planning-items/{item_id}", status_code=204)
def delete_planning_item(item_id: int, store: KeyValueStore = Depends(get_store)):
    try:
        PlanningItemService(store).delete(item_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/transactions")
def list_transactions(store: KeyValueStore = Depends(get_store)):
    return _dump(TransactionService(store).list_all())


@app.post("/api/transactions", status_code=201)
def create_transaction(data: TransactionIn, store: KeyValueStore = Depends(get_store)):
    try:
        txn = TransactionService(store).create(data)
    except BalanceLimitError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return txn.model_dump(mode="json")


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int, data: TransactionIn, store: KeyValueStore = Depends(get_store)
):
    try:
        txn = TransactionService(store).update(transaction_id, data)
    except BalanceLimitError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return txn.model_dump(mode="json")


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: int, store: KeyValueStore = Depends(get_store)):
    try:
        TransactionService(store).delete(transaction_id)
    except BalanceLimitError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/api/transactions/recompute")
def recompute_balances(store: KeyValueStore = Depends(get_store)):
    return _dump(TransactionReconciler(store).recompute_balances())


@app.post("/api/funding/fund")
def fund_category(data: FundCategoryIn, store: KeyValueStore = Depends(get_store)):
    success = FundingService(store).fund_category(
        data.category_id, data.amount, data.paycheck_id, data.date
    )
    return {"success": success}


@app.post("/api/funding/move")
def move_money(data: MoveMoneyIn, store: KeyValueStore = Depends(get_store)):
    success = FundingService(store).move_money(
        data.from_category_id, data.to_category_id, data.amount, data.note
    )
    return {"success": success}


@app.post("/api/funding/transfer")
def transfer_funds(data: TransferFundsIn, store: KeyValueStore = Depends(get_store)):
    success = FundingService(store).transfer_funds(
        data.source, data.destination, data.amount, data.note, data.paycheck_id
    )
    return {"success": success}


@app.post("/api/funding/auto")
def auto_fund(data: AutoFundIn, store: KeyValueStore = Depends(get_store)):
    result = FundingService(store).auto_fund_categories(
        data.total_amount, data.paycheck_id
    )
    return result.model_dump(mode="json")


@app.get("/api/funding/to-be-allocated")
def to_be_allocated(store: KeyValueStore = Depends(get_store)):
    return {"to_be_allocated": FundingService(store).calculate_to_be_allocated()}


@app.get("/api/funding/history")
def funding_history(store: KeyValueStore = Depends(get_store)):
    return _dump(FundingService(store).funding_history())


@app.get("/api/funding/transfers")
def funding_transfers(store: KeyValueStore = Depends(get_store)):
    return _dump(FundingService(store).transfers())


@app.get("/api/funding/needed")
def needed_funding(store: KeyValueStore = Depends(get_store)):
    return FundingService(store).calculate_needed_funding()


@app.get("/api/funding/suggestions")
def funding_suggestions(store: KeyValueStore = Depends(get_store)):
    return _dump(FundingService(store).get_funding_suggestions())


@app.get("/api/paychecks")
def list_paychecks(store: KeyValueStore = Depends(get_store)):
    return _dump(PaycheckService(store).list_all())


@app.post("/api/paychecks", status_code=201)
def create_paycheck(data: PaycheckIn, store: KeyValueStore = Depends(get_store)):
    try:
        paycheck = PaycheckService(store).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return paycheck.model_dump(mode="json")


@app.get("/api/paychecks/upcoming")
def upcoming_paychecks(months: int = 3, store: KeyValueStore = Depends(get_store)):
    months = min(max(months, 1), 24)
    return _dump(PaycheckService(store).get_all_upcoming_paycheck_dates(months))


@app.get("/api/paychecks/monthly-income")
def monthly_income(store: KeyValueStore = Depends(get_store)):
    return {"monthly_income": PaycheckService(store).calculate_total_monthly_income()}


@app.put("/api/paychecks/{paycheck_id}")
def update_paycheck(
    paycheck_id: int, data: PaycheckIn, store: KeyValueStore = Depends(get_store)
):
    service = PaycheckService(store)
    try:
        service.get(paycheck_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        paycheck = service.update(paycheck_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return paycheck.model_dump(mode="json")


@app.delete("/api/paychecks/{paycheck_id}")
def delete_paycheck(paycheck_id: int, store: KeyValueStore = Depends(get_store)):
    try:
        deleted = PaycheckService(store).delete(paycheck_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"success": deleted}


@app.post("/api/paychecks/{paycheck_id}/toggle")
def toggle_paycheck(paycheck_id: int, store: KeyValueStore = Depends(get_store)):
    try:
        paycheck = PaycheckService(store).toggle_active(paycheck_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return paycheck.model_dump(mode="json")


@app.post("/api/paychecks/{paycheck_id}/received")
def paycheck_received(
    paycheck_id: int, data: PaycheckReceivedIn, store: KeyValueStore = Depends(get_store)
):
    try:
        paycheck = PaycheckService(store).record_paycheck_received(paycheck_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    logger.info(
        f"paycheck_received: paycheck={paycheck_id} amount={data.actual_amount}"
    )
    return paycheck.model_dump(mode="json")


@app.get("/api/paychecks/{paycheck_id}/dates")
def paycheck_dates(
    paycheck_id: int,
    count: Optional[int] = None,
    store: KeyValueStore = Depends(get_store),
):
    if count is not None:
        count = min(max(count, 0), 260)
    dates = PaycheckService(store).generate_paycheck_dates(paycheck_id, count)
    return [d.isoformat() for d in dates]


@app.post("/api/timelines")
def timelines(data: TimelineRequest, store: KeyValueStore = Depends(get_store)):
    try:
        schedule = PaycheckService(store).get(data.paycheck_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    funding = FundingService(store)
    entries = item_timelines(
        funding.planning_items(),
        schedule,
        funding.accounts(),
        data.allocations,
        as_of=data.as_of or local_today(),
    )
    board = UrgencyBoard(entries)
    next_deadline = board.next_critical_deadline()
    category_urgency = {}
    for entry in entries:
        if entry.category_id is None or entry.category_id in category_urgency:
            continue
        score, label = board.category_urgency(entry.category_id)
        category_urgency[entry.category_id] = {"score": score, "label": label}
    return {
        "items": _dump(entries),
        "groups": board.as_dict(),
        "suggestions": _dump(board.allocation_suggestions()),
        "category_urgency": category_urgency,
        "next_critical_deadline": next_deadline.isoformat() if next_deadline else None,
    }


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
