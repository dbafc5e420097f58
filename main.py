import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

from auth import (
    NotAuthenticated,
    current_context,
    issue_token,
    login_session,
    logout_session,
    optional_context,
)
from config import get_settings
from csrf import generate_csrf_token, validate_csrf_token
from database import get_db, init_db
from forms import clean_text, parse_amount
from schemas import (
    ALL,
    AMOUNT_MAX,
    AuthContext,
    ExpenseIn,
    FilterCriteria,
    LoginIn,
    RegistrationIn,
)
from services import (
    AuthenticationFailed,
    CategoryService,
    DuplicateUsername,
    ExpenseNotFound,
    ExpenseService,
    UserService,
    ValidationFailed,
    present_expenses,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Expense Tracker")
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.secret_key,
    session_cookie=settings.session_cookie,
)


@app.on_event("startup")
def startup_event():
    if settings.create_schema:
        init_db()


@app.exception_handler(NotAuthenticated)
async def not_authenticated_handler(request: Request, exc: NotAuthenticated):
    if request.url.path.startswith("/api/") or request.headers.get("Authorization"):
        return JSONResponse(
            {"detail": "Not authenticated"},
            status_code=401,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return RedirectResponse(url="/showLoginPage", status_code=303)


def form_value(form, key: str) -> str:
    value = form.get(key)
    return value if isinstance(value, str) else ""


def require_csrf(form, client_id: int = 0) -> None:
    if not validate_csrf_token(form_value(form, "csrf_token"), client_id):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")


def expense_payload_from_form(form) -> ExpenseIn:
    return ExpenseIn(
        amount=parse_amount(form_value(form, "amount")),
        date_time=form_value(form, "dateTime"),
        description=clean_text(form_value(form, "description")),
        category=clean_text(form_value(form, "category")) or "",
    )


def filter_payload_from_form(form) -> FilterCriteria:
    amount_from = clean_text(form_value(form, "from"))
    amount_to = clean_text(form_value(form, "to"))
    return FilterCriteria(
        category=clean_text(form_value(form, "category")) or ALL,
        amount_from=parse_amount(amount_from) if amount_from else 0,
        amount_to=parse_amount(amount_to) if amount_to else AMOUNT_MAX,
        year=clean_text(form_value(form, "year")) or ALL,
        month=clean_text(form_value(form, "month")) or ALL,
    )


def registration_payload_from_form(form) -> RegistrationIn:
    return RegistrationIn(
        username=form_value(form, "username"),
        password=form_value(form, "password"),
        first_name=form_value(form, "firstName"),
        last_name=form_value(form, "lastName"),
        email=form_value(form, "email"),
    )


def category_names(db: Session) -> list[str]:
    return [category.name for category in CategoryService(db).list_all()]


@app.post("/api/auth/register")
def api_register(data: RegistrationIn, db: Session = Depends(get_db)):
    try:
        UserService(db).register(data)
    except DuplicateUsername as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return "User registered successfully"


@app.post("/api/auth/login")
def api_login(data: LoginIn, db: Session = Depends(get_db)):
    try:
        context = UserService(db).authenticate(data.username, data.password)
    except AuthenticationFailed as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    logger.info(f"token_issued: client_id={context.client_id}")
    return issue_token(context)


@app.get("/")
def landing_page(
    context: Optional[AuthContext] = Depends(optional_context),
    db: Session = Depends(get_db),
):
    if context is None:
        return {"session_client": None}
    client = UserService(db).find_client_by_id(context.client_id)
    return {
        "session_client": {
            "id": client.id,
            "first_name": client.first_name,
            "last_name": client.last_name,
            "email": client.email,
        }
    }


@app.get("/showLoginPage")
def show_login_page(request: Request):
    params = request.query_params
    return {
        "error": "error" in params,
        "logout": "logout" in params,
        "registration_success": "registrationSuccess" in params,
        "csrf_token": generate_csrf_token(),
    }


@app.post("/authenticateTheUser")
async def authenticate_the_user(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    require_csrf(form)
    try:
        context = UserService(db).authenticate(
            form_value(form, "username").strip(), form_value(form, "password")
        )
    except AuthenticationFailed:
        return RedirectResponse(url="/showLoginPage?error", status_code=303)
    login_session(request, context)
    return RedirectResponse(url="/", status_code=303)


@app.post("/logout")
async def logout(request: Request, context: AuthContext = Depends(current_context)):
    form = await request.form()
    require_csrf(form, context.client_id)
    logout_session(request)
    return RedirectResponse(url="/showLoginPage?logout", status_code=303)


@app.get("/showRegistrationForm")
def show_registration_form(request: Request):
    return {
        "user_found": "userFound" in request.query_params,
        "csrf_token": generate_csrf_token(),
    }


@app.post("/processRegistration")
async def process_registration(request: Request, db: Session = Depends(get_db)):
    form = await request.form()
    require_csrf(form)
    try:
        data = registration_payload_from_form(form)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        UserService(db).register(data)
    except DuplicateUsername:
        return RedirectResponse(url="/showRegistrationForm?userFound", status_code=303)
    return RedirectResponse(url="/showLoginPage?registrationSuccess", status_code=303)


@app.get("/showAdd")
def show_add(
    context: AuthContext = Depends(current_context), db: Session = Depends(get_db)
):
    return {
        "expense": {
            "amount": None,
            "date_time": None,
            "description": None,
            "category": None,
        },
        "categories": category_names(db),
        "csrf_token": generate_csrf_token(context.client_id),
    }


@app.post("/submitAdd")
async def submit_add(
    request: Request,
    context: AuthContext = Depends(current_context),
    db: Session = Depends(get_db),
):
    form = await request.form()
    require_csrf(form, context.client_id)
    try:
        data = expense_payload_from_form(form)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        ExpenseService(db, context).create(data)
    except ValidationFailed as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return RedirectResponse(url="/list", status_code=303)


@app.get("/list")
def list_expenses(
    context: AuthContext = Depends(current_context), db: Session = Depends(get_db)
):
    expenses = ExpenseService(db, context).find_all_by_client_id()
    return {
        "expense_list": [e.model_dump() for e in present_expenses(db, expenses)],
        "filter": FilterCriteria().model_dump(),
        "categories": category_names(db),
        "csrf_token": generate_csrf_token(context.client_id),
    }


@app.get("/showUpdate")
def show_update(
    expense_id: int = Query(..., alias="expId"),
    context: AuthContext = Depends(current_context),
    db: Session = Depends(get_db),
):
    try:
        expense = ExpenseService(db, context).find_by_id(expense_id)
    except ExpenseNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    category = CategoryService(db).find_by_id(expense.category_id)
    return {
        "expense": {
            "amount": expense.amount,
            "date_time": expense.date_time,
            "description": expense.description,
            "category": category.name,
        },
        "expense_id": expense.id,
        "categories": category_names(db),
        "csrf_token": generate_csrf_token(context.client_id),
    }


@app.post("/submitUpdate")
async def submit_update(
    request: Request,
    expense_id: int = Query(..., alias="expId"),
    context: AuthContext = Depends(current_context),
    db: Session = Depends(get_db),
):
    form = await request.form()
    require_csrf(form, context.client_id)
    try:
        data = expense_payload_from_form(form)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        ExpenseService(db, context).update(expense_id, data)
    except ValidationFailed as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return RedirectResponse(url="/list", status_code=303)


@app.get("/delete")
def delete_expense(
    expense_id: int = Query(..., alias="expId"),
    context: AuthContext = Depends(current_context),
    db: Session = Depends(get_db),
):
    ExpenseService(db, context).delete_by_id(expense_id)
    return RedirectResponse(url="/list", status_code=303)


@app.post("/processFilter")
async def process_filter(
    request: Request,
    context: AuthContext = Depends(current_context),
    db: Session = Depends(get_db),
):
    form = await request.form()
    require_csrf(form, context.client_id)
    try:
        criteria = filter_payload_from_form(form)
        expenses = ExpenseService(db, context).filter(criteria)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "expense_list": [e.model_dump() for e in present_expenses(db, expenses)],
        "filter": criteria.model_dump(),
    }


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
