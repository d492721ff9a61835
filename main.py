import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from sqlalchemy.orm import Session, sessionmaker

from catalog import EXPENSE_CATEGORIES, ROOMS
from config import Settings, get_settings
from database import build_session_factory, session_scope
from schemas import (
    AllocationAmountIn,
    BudgetIn,
    BudgetOut,
    CategoryAllocationIn,
    CategoryAllocationOut,
    ExpenseIn,
    ExpenseOut,
    GlobalBudgetIn,
    GlobalBudgetOut,
    RoomAllocationIn,
    RoomAllocationOut,
)
from services import (
    BudgetService,
    CategoryAllocationService,
    CSVService,
    ExpenseFilters,
    ExpenseService,
    GlobalBudgetService,
    RoomAllocationService,
    StatsService,
)
from stats import BudgetStats, CategoryStats, ExpenseStats, budget_status


logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


def get_db(request: Request):
    with session_scope(request.app.state.session_factory) as db:
        yield db


def filters_from_request(request: Request) -> ExpenseFilters:
    params = request.query_params
    return ExpenseFilters(
        query=(params.get("q") or "").strip() or None,
        category=(params.get("category") or "").strip() or None,
        room=(params.get("room") or "").strip() or None,
    )


def _category_payload(node: CategoryStats) -> dict[str, object]:
    return {
        "category": node.category,
        "allocated_cents": node.allocated,
        "spent_cents": node.spent,
        "remaining_cents": node.remaining,
        "percentage": node.percentage,
        "status": budget_status(node.percentage).value,
    }


def budget_stats_payload(stats: BudgetStats) -> dict[str, object]:
    return {
        "global_budget": GlobalBudgetOut.model_validate(stats.global_budget).model_dump(
            mode="json"
        ),
        "total_allocated_cents": stats.total_allocated,
        "total_spent_cents": stats.total_spent,
        "total_remaining_cents": stats.total_remaining,
        "unallocated_cents": stats.unallocated_amount,
        "rooms": [
            {
                "room": room.room,
                "allocated_cents": room.allocated,
                "spent_cents": room.spent,
                "remaining_cents": room.remaining,
                "percentage": room.percentage,
                "status": budget_status(room.percentage).value,
                "categories": [_category_payload(c) for c in room.categories],
            }
            for room in stats.rooms
        ],
        "categories": [_category_payload(c) for c in stats.categories],
    }


def expense_stats_payload(stats: ExpenseStats) -> dict[str, object]:
    return {
        "total_spent_cents": stats.total_spent,
        "total_budget_cents": stats.total_budget,
        "remaining_budget_cents": stats.remaining_budget,
        "budget_used_percentage": stats.budget_used_percentage,
        "status": budget_status(stats.budget_used_percentage).value,
        "by_category": {
            key: {"spent_cents": v.spent, "budget_cents": v.budget}
            for key, v in stats.by_category.items()
        },
        "by_room": {
            key: {"spent_cents": v.spent, "budget_cents": v.budget}
            for key, v in stats.by_room.items()
        },
    }


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker[Session]] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(title="Renovation Tracker", version=APP_VERSION)
    app.state.settings = settings
    app.state.session_factory = session_factory

    @app.on_event("startup")
    def startup_event():
        if app.state.session_factory is None:
            app.state.session_factory = build_session_factory(settings=settings)
        logger.info(f"startup: version={APP_VERSION}")

    @app.get("/api/health")
    def health():
        return {"status": "ok", "version": APP_VERSION}

    @app.get("/api/catalog")
    def catalog():
        return {"categories": list(EXPENSE_CATEGORIES), "rooms": list(ROOMS)}

    # expenses

    @app.get("/api/expenses")
    def list_expenses(request: Request, db: Session = Depends(get_db)):
        filters = filters_from_request(request)
        service = ExpenseService(db)
        items = service.list(filters)
        return {
            "items": [
                ExpenseOut.model_validate(e).model_dump(mode="json") for e in items
            ],
            "count": len(items),
            "total_cents": service.total(filters),
        }

    @app.post("/api/expenses", response_model=ExpenseOut, status_code=201)
    def create_expense(data: ExpenseIn, db: Session = Depends(get_db)):
        try:
            return ExpenseService(db).create(data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.get("/api/expenses/export.csv")
    def export_expenses_csv(request: Request, db: Session = Depends(get_db)):
        expenses = ExpenseService(db).list(filters_from_request(request))
        content = CSVService(db).export(expenses)
        return Response(
            content=content,
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="expenses.csv"'},
        )

    async def _csv_body(request: Request) -> str:
        raw = await request.body()
        if len(raw) > request.app.state.settings.csv_max_bytes:
            raise HTTPException(status_code=413, detail="CSV file too large")
        try:
            return raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise HTTPException(status_code=400, detail="CSV must be UTF-8") from exc

    @app.post("/api/expenses/import/preview")
    async def import_preview(request: Request, db: Session = Depends(get_db)):
        content = await _csv_body(request)
        rows, errors = CSVService(db).preview(content)
        return {"rows": rows, "errors": errors}

    @app.post("/api/expenses/import/commit")
    async def import_commit(request: Request, db: Session = Depends(get_db)):
        content = await _csv_body(request)
        try:
            count = CSVService(db).commit(content)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"imported": count}

    @app.get("/api/expenses/{expense_id}", response_model=ExpenseOut)
    def get_expense(expense_id: int, db: Session = Depends(get_db)):
        try:
            return ExpenseService(db).get(expense_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.put("/api/expenses/{expense_id}", response_model=ExpenseOut)
    def update_expense(
        expense_id: int, data: ExpenseIn, db: Session = Depends(get_db)
    ):
        service = ExpenseService(db)
        try:
            service.get(expense_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        try:
            return service.update(expense_id, data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.delete("/api/expenses/{expense_id}", status_code=204)
    def delete_expense(expense_id: int, db: Session = Depends(get_db)):
        try:
            ExpenseService(db).delete(expense_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return Response(status_code=204)

    # hierarchical budgets

    @app.get("/api/global-budgets", response_model=list[GlobalBudgetOut])
    def list_global_budgets(db: Session = Depends(get_db)):
        return GlobalBudgetService(db).list()

    @app.post("/api/global-budgets", response_model=GlobalBudgetOut, status_code=201)
    def create_global_budget(data: GlobalBudgetIn, db: Session = Depends(get_db)):
        return GlobalBudgetService(db).create(data)

    @app.get("/api/global-budgets/{budget_id}", response_model=GlobalBudgetOut)
    def get_global_budget(budget_id: int, db: Session = Depends(get_db)):
        try:
            return GlobalBudgetService(db).get(budget_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.put("/api/global-budgets/{budget_id}", response_model=GlobalBudgetOut)
    def update_global_budget(
        budget_id: int, data: GlobalBudgetIn, db: Session = Depends(get_db)
    ):
        try:
            return GlobalBudgetService(db).update(budget_id, data)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.delete("/api/global-budgets/{budget_id}", status_code=204)
    def delete_global_budget(budget_id: int, db: Session = Depends(get_db)):
        try:
            GlobalBudgetService(db).delete(budget_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return Response(status_code=204)

    @app.get(
        "/api/global-budgets/{budget_id}/rooms",
        response_model=list[RoomAllocationOut],
    )
    def list_room_allocations(budget_id: int, db: Session = Depends(get_db)):
        try:
            GlobalBudgetService(db).get(budget_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return RoomAllocationService(db).list(budget_id)

    @app.post(
        "/api/global-budgets/{budget_id}/rooms",
        response_model=RoomAllocationOut,
        status_code=201,
    )
    def create_room_allocation(
        budget_id: int, data: AllocationAmountIn, db: Session = Depends(get_db)
    ):
        try:
            GlobalBudgetService(db).get(budget_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        try:
            return RoomAllocationService(db).create(
                RoomAllocationIn(
                    global_budget_id=budget_id,
                    room=data.label,
                    allocated_amount_cents=data.allocated_amount_cents,
                )
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.put(
        "/api/room-allocations/{allocation_id}", response_model=RoomAllocationOut
    )
    def update_room_allocation(
        allocation_id: int, data: AllocationAmountIn, db: Session = Depends(get_db)
    ):
        service = RoomAllocationService(db)
        try:
            service.get(allocation_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        try:
            return service.update(
                allocation_id, data.label, data.allocated_amount_cents
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.delete("/api/room-allocations/{allocation_id}", status_code=204)
    def delete_room_allocation(allocation_id: int, db: Session = Depends(get_db)):
        try:
            RoomAllocationService(db).delete(allocation_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return Response(status_code=204)

    @app.get(
        "/api/room-allocations/{allocation_id}/categories",
        response_model=list[CategoryAllocationOut],
    )
    def list_room_categories(allocation_id: int, db: Session = Depends(get_db)):
        try:
            RoomAllocationService(db).get(allocation_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return CategoryAllocationService(db).list(room_allocation_id=allocation_id)

    @app.post(
        "/api/room-allocations/{allocation_id}/categories",
        response_model=CategoryAllocationOut,
        status_code=201,
    )
    def create_room_category(
        allocation_id: int, data: AllocationAmountIn, db: Session = Depends(get_db)
    ):
        try:
            RoomAllocationService(db).get(allocation_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        try:
            return CategoryAllocationService(db).create(
                CategoryAllocationIn(
                    room_allocation_id=allocation_id,
                    category=data.label,
                    allocated_amount_cents=data.allocated_amount_cents,
                )
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.get(
        "/api/global-budgets/{budget_id}/categories",
        response_model=list[CategoryAllocationOut],
    )
    def list_budget_categories(budget_id: int, db: Session = Depends(get_db)):
        try:
            GlobalBudgetService(db).get(budget_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return CategoryAllocationService(db).list(global_budget_id=budget_id)

    @app.post(
        "/api/global-budgets/{budget_id}/categories",
        response_model=CategoryAllocationOut,
        status_code=201,
    )
    def create_budget_category(
        budget_id: int, data: AllocationAmountIn, db: Session = Depends(get_db)
    ):
        try:
            GlobalBudgetService(db).get(budget_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        try:
            return CategoryAllocationService(db).create(
                CategoryAllocationIn(
                    global_budget_id=budget_id,
                    category=data.label,
                    allocated_amount_cents=data.allocated_amount_cents,
                )
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.put(
        "/api/category-allocations/{allocation_id}",
        response_model=CategoryAllocationOut,
    )
    def update_category_allocation(
        allocation_id: int, data: AllocationAmountIn, db: Session = Depends(get_db)
    ):
        service = CategoryAllocationService(db)
        try:
            service.get(allocation_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        try:
            return service.update(
                allocation_id, data.label, data.allocated_amount_cents
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.delete("/api/category-allocations/{allocation_id}", status_code=204)
    def delete_category_allocation(
        allocation_id: int, db: Session = Depends(get_db)
    ):
        try:
            CategoryAllocationService(db).delete(allocation_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return Response(status_code=204)

    # legacy flat budgets

    @app.get("/api/budgets", response_model=list[BudgetOut])
    def list_budgets(db: Session = Depends(get_db)):
        return BudgetService(db).list()

    @app.post("/api/budgets", response_model=BudgetOut, status_code=201)
    def create_budget(data: BudgetIn, db: Session = Depends(get_db)):
        try:
            return BudgetService(db).create(data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.put("/api/budgets/{budget_id}", response_model=BudgetOut)
    def update_budget(budget_id: int, data: BudgetIn, db: Session = Depends(get_db)):
        service = BudgetService(db)
        try:
            service.get(budget_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        try:
            return service.update(budget_id, data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.delete("/api/budgets/{budget_id}", status_code=204)
    def delete_budget(budget_id: int, db: Session = Depends(get_db)):
        try:
            BudgetService(db).delete(budget_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return Response(status_code=204)

    # statistics

    @app.get("/api/stats/budget")
    def active_budget_stats(db: Session = Depends(get_db)):
        stats = StatsService(db).active_budget_stats()
        if stats is None:
            raise HTTPException(status_code=404, detail="No global budget")
        return budget_stats_payload(stats)

    @app.get("/api/stats/budget/{budget_id}")
    def budget_stats(budget_id: int, db: Session = Depends(get_db)):
        stats = StatsService(db).budget_stats(budget_id)
        if stats is None:
            raise HTTPException(status_code=404, detail="Global budget not found")
        return budget_stats_payload(stats)

    @app.get("/api/stats/budget/{budget_id}/flat")
    def flat_budget_stats(budget_id: int, db: Session = Depends(get_db)):
        stats = StatsService(db).flat_budget_stats(budget_id)
        if stats is None:
            raise HTTPException(status_code=404, detail="Global budget not found")
        return budget_stats_payload(stats)

    @app.get("/api/stats/expenses")
    def expense_stats(db: Session = Depends(get_db)):
        return expense_stats_payload(StatsService(db).expense_stats())

    @app.get("/api/stats/dashboard")
    def dashboard_stats(db: Session = Depends(get_db)):
        stats, hierarchical = StatsService(db).dashboard()
        payload = expense_stats_payload(stats)
        payload["has_hierarchical_budget"] = hierarchical
        return payload

    return app


app = create_app()


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
