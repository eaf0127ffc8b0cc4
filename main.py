import logging
from datetime import date
from typing import Any, Literal, Optional

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.orm import Session

from auth import Principal, current_principal, require_admin
from config import get_settings
from database import get_db, init_db
from models import EXPENSE_CATEGORIES
from periods import local_today
from reports import PDF_MEDIA_TYPE, Report, ReportRenderingError, render_pdf
from schemas import BudgetOut, ExpenseOut, IncomeOut, UserOut, from_cents
from services import (
    AdminService,
    AnalyticsService,
    BudgetConflictError,
    BudgetService,
    DashboardService,
    ExpenseService,
    IncomeService,
    NotFoundError,
    ReportService,
)
from validation import (
    FormValidationError,
    resolve_category,
    validate_budget_form,
    validate_expense_form,
    validate_income_form,
)


settings = get_settings()
app = FastAPI(title=settings.app_name)


@app.on_event("startup")
def startup_event():
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    init_db()


@app.exception_handler(FormValidationError)
def form_validation_handler(request: Request, exc: FormValidationError):
    status_code = 409 if isinstance(exc, BudgetConflictError) else 422
    return JSONResponse(
        status_code=status_code,
        content={"errors": [error.as_dict() for error in exc.errors]},
    )


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = []
    for item in exc.errors():
        loc = [
            str(part)
            for part in item.get("loc", ())
            if part not in ("body", "query")
        ]
        errors.append({"field": ".".join(loc) or "body", "message": item["msg"]})
    return JSONResponse(status_code=422, content={"errors": errors})


@app.exception_handler(NotFoundError)
def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ReportRenderingError)
def report_rendering_handler(request: Request, exc: ReportRenderingError):
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def _today() -> date:
    return local_today()


def _pdf_response(report: Report) -> StreamingResponse:
    pdf_bytes = render_pdf(report)
    return StreamingResponse(
        iter([pdf_bytes]),
        media_type=PDF_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{report.filename}"',
            "Content-Length": str(len(pdf_bytes)),
        },
    )


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/categories")
def list_categories():
    return {"categories": EXPENSE_CATEGORIES}


@app.get("/incomes")
def list_incomes(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    incomes = IncomeService(db, principal.user_id).list(month, year, today=_today())
    return {
        "incomes": [IncomeOut.from_model(i) for i in incomes],
        "total": str(from_cents(sum(i.amount_cents for i in incomes))),
        "month": month,
        "year": year,
    }


@app.post("/incomes", status_code=201)
def create_income(
    payload: dict[str, Any] = Body(...),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    data = validate_income_form(payload, today=_today())
    income = IncomeService(db, principal.user_id).create(data)
    return IncomeOut.from_model(income)


@app.get("/incomes/{income_id}")
def get_income(
    income_id: int,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    return IncomeOut.from_model(IncomeService(db, principal.user_id).get(income_id))


@app.put("/incomes/{income_id}")
def update_income(
    income_id: int,
    payload: dict[str, Any] = Body(...),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    service = IncomeService(db, principal.user_id)
    service.get(income_id)
    data = validate_income_form(payload, today=_today())
    return IncomeOut.from_model(service.update(income_id, data))


@app.delete("/incomes/{income_id}", status_code=204)
def delete_income(
    income_id: int,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    IncomeService(db, principal.user_id).delete(income_id)
    return Response(status_code=204)


@app.get("/expenses")
def list_expenses(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    category: Optional[str] = Query(None, max_length=50),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    resolved = resolve_category(category) if category else None
    expenses = ExpenseService(db, principal.user_id).list(
        month, year, resolved, today=_today()
    )
    return {
        "expenses": [ExpenseOut.from_model(e) for e in expenses],
        "total": str(from_cents(sum(e.amount_cents for e in expenses))),
        "month": month,
        "year": year,
        "category": resolved.value if resolved else None,
    }


@app.post("/expenses", status_code=201)
def create_expense(
    payload: dict[str, Any] = Body(...),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    data = validate_expense_form(payload, today=_today())
    expense = ExpenseService(db, principal.user_id).create(data)
    return ExpenseOut.from_model(expense)


@app.get("/expenses/{expense_id}")
def get_expense(
    expense_id: int,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    return ExpenseOut.from_model(ExpenseService(db, principal.user_id).get(expense_id))


@app.put("/expenses/{expense_id}")
def update_expense(
    expense_id: int,
    payload: dict[str, Any] = Body(...),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    service = ExpenseService(db, principal.user_id)
    service.get(expense_id)
    data = validate_expense_form(payload, today=_today())
    return ExpenseOut.from_model(service.update(expense_id, data))


@app.delete("/expenses/{expense_id}", status_code=204)
def delete_expense(
    expense_id: int,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    ExpenseService(db, principal.user_id).delete(expense_id)
    return Response(status_code=204)


@app.get("/budgets")
def list_budgets(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    return BudgetService(db, principal.user_id).overview(month, year, today=_today())


@app.post("/budgets", status_code=201)
def create_budget(
    payload: dict[str, Any] = Body(...),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    data = validate_budget_form(payload, today=_today())
    budget = BudgetService(db, principal.user_id).create(data)
    return BudgetOut.from_model(budget)


@app.get("/budgets/{budget_id}")
def get_budget(
    budget_id: int,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    service = BudgetService(db, principal.user_id)
    budget = BudgetOut.from_model(service.get(budget_id))
    return {"budget": budget, "status": service.status(budget_id).as_dict()}


@app.put("/budgets/{budget_id}")
def update_budget(
    budget_id: int,
    payload: dict[str, Any] = Body(...),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    service = BudgetService(db, principal.user_id)
    service.get(budget_id)
    data = validate_budget_form(payload, today=_today(), reject_future_month=False)
    return BudgetOut.from_model(service.update(budget_id, data))


@app.delete("/budgets/{budget_id}", status_code=204)
def delete_budget(
    budget_id: int,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    BudgetService(db, principal.user_id).delete(budget_id)
    return Response(status_code=204)


@app.get("/dashboard")
def dashboard(
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    return DashboardService(db, principal.user_id).build(today=_today())


@app.get("/analytics")
def analytics(
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    return AnalyticsService(db, principal.user_id).build(today=_today())


@app.get("/reports")
def reports_index(
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    return ReportService(db, principal.user_id).index(today=_today())


@app.get("/reports/monthly")
def monthly_report(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    report = ReportService(db, principal.user_id).monthly(month, year, today=_today())
    return report.as_dict()


@app.get("/reports/monthly/pdf")
def monthly_report_pdf(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    report = ReportService(db, principal.user_id).monthly(month, year, today=_today())
    return _pdf_response(report)


@app.get("/reports/yearly")
def yearly_report(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    report = ReportService(db, principal.user_id).yearly(year, today=_today())
    return report.as_dict()


@app.get("/reports/yearly/pdf")
def yearly_report_pdf(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
):
    report = ReportService(db, principal.user_id).yearly(year, today=_today())
    return _pdf_response(report)


@app.get("/admin/dashboard")
def admin_dashboard(
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return AdminService(db).dashboard(today=_today())


@app.get("/admin/analytics")
def admin_analytics(
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return AdminService(db).analytics(today=_today())


@app.get("/admin/users")
def admin_users(
    search: Optional[str] = Query(None, max_length=100),
    status: Optional[Literal["active", "inactive"]] = Query(None),
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return AdminService(db).list_users(search, status)


@app.get("/admin/users/{user_id}")
def admin_user_details(
    user_id: int,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return AdminService(db).user_details(user_id, today=_today())


@app.post("/admin/users/{user_id}/toggle-status")
def admin_toggle_user_status(
    user_id: int,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = AdminService(db).toggle_status(user_id)
    return UserOut.from_model(user)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
