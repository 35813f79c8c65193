import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import (
    FastAPI,
    Depends,
    Cookie,
    Header,
    Query,
    Request,
    Response,
)
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from .config import Settings, load_settings
from .db import create_db_engine, create_db_and_tables, ping
from .errors import LibraryError, Unauthenticated, Forbidden
from .models import (
    User,
    Book,
    Booking,
    Role,
    LoginSession,
    RegisterPayload,
    LoginPayload,
    LoginResp,
    UserInfoResp,
    UserPatch,
    BookAddPayload,
    BookPatch,
    BorrowPayload,
)
from .services import BookingEngine, BookCatalogService, UserService
from .stores import BookStore, BookingStore, UserStore, SessionStore, Deadline

logger = logging.getLogger(__name__)


def mark_overdue_bookings(db_engine: Engine):
    with Session(db_engine) as dbsession:
        bookings = BookingEngine(
            UserStore(dbsession), BookStore(dbsession), BookingStore(dbsession)
        )
        try:
            bookings.update_overdue()
        except LibraryError:
            # next interval tries again
            logger.exception("overdue sweep failed")


def clear_expired_sessions(db_engine: Engine, session_ttl: int):
    with Session(db_engine) as dbsession:
        users = UserService(UserStore(dbsession), SessionStore(dbsession), session_ttl)
        try:
            users.purge_expired_sessions()
        except LibraryError:
            logger.exception("session purge failed")


def bootstrap_admin(db_engine: Engine, settings: Settings):
    with Session(db_engine) as dbsession:
        users = UserService(
            UserStore(dbsession), SessionStore(dbsession), settings.session_ttl
        )
        users.ensure_admin(
            settings.admin_username, settings.admin_email, settings.admin_password
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    db_engine: Engine = app.state.db_engine
    create_db_and_tables(db_engine)
    if settings.bootstrap_admin:
        bootstrap_admin(db_engine, settings)
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        mark_overdue_bookings,
        "interval",
        minutes=settings.overdue_interval,
        args=[db_engine],
    )
    scheduler.add_job(
        clear_expired_sessions,
        "interval",
        seconds=settings.session_ttl,
        args=[db_engine, settings.session_ttl],
    )
    scheduler.start()
    yield
    scheduler.shutdown()


def get_dbsession(request: Request):
    with Session(request.app.state.db_engine) as session:
        yield session


DbSessDep = Annotated[Session, Depends(get_dbsession)]


def get_deadline(request: Request) -> Deadline:
    return Deadline.after(request.app.state.settings.request_timeout)


DeadlineDep = Annotated[Deadline, Depends(get_deadline)]


def get_user_service(request: Request, dbsession: DbSessDep) -> UserService:
    return UserService(
        UserStore(dbsession),
        SessionStore(dbsession),
        request.app.state.settings.session_ttl,
    )


def get_catalog(dbsession: DbSessDep) -> BookCatalogService:
    return BookCatalogService(BookStore(dbsession))


def get_booking_engine(dbsession: DbSessDep) -> BookingEngine:
    return BookingEngine(
        UserStore(dbsession), BookStore(dbsession), BookingStore(dbsession)
    )


UserSvcDep = Annotated[UserService, Depends(get_user_service)]
CatalogDep = Annotated[BookCatalogService, Depends(get_catalog)]
BookingDep = Annotated[BookingEngine, Depends(get_booking_engine)]


def verify_session(
    users: UserSvcDep,
    deadline: DeadlineDep,
    authorization: str | None = Header(None),
    session_id: uuid.UUID | None = Cookie(None),
) -> tuple[LoginSession, User]:
    token = session_id
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() != "bearer" or not credentials:
            raise Unauthenticated("malformed authorization header")
        try:
            token = uuid.UUID(credentials.strip())
        except ValueError:
            raise Unauthenticated("invalid token") from None
    if token is None:
        raise Unauthenticated("missing authorization")
    return users.resolve_session(token, deadline)


LoginSessDep = Annotated[tuple[LoginSession, User], Depends(verify_session)]


def current_user(login: LoginSessDep) -> User:
    return login[1]


def require_admin(user: Annotated[User, Depends(current_user)]) -> User:
    if user.role != Role.ADMIN:
        raise Forbidden("admin access required")
    return user


CurrentUser = Annotated[User, Depends(current_user)]
AdminUser = Annotated[User, Depends(require_admin)]

Limit = Annotated[int, Query(ge=1, le=100)]
Offset = Annotated[int, Query(ge=0)]


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title="Library API", lifespan=lifespan)
    app.state.settings = settings
    app.state.db_engine = create_db_engine(settings)

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "[%s] %s %s - %d (%dms)",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response

    @app.exception_handler(LibraryError)
    async def library_error(request: Request, exc: LibraryError):
        request_id = getattr(request.state, "request_id", "")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s", request_id, type(exc).__name__, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "request_id": request_id,
                "error": HTTPStatus(exc.status_code).phrase,
                "message": exc.message,
                "status": exc.status_code,
            },
        )

    @app.get("/healthz")
    async def healthz():
        return {"status": "healthy"}

    @app.get("/readyz")
    def readyz(request: Request):
        try:
            ping(request.app.state.db_engine)
        except SQLAlchemyError:
            return JSONResponse(status_code=503, content={"status": "not_ready"})
        return {"status": "ready"}

    # auth

    @app.post("/auth/register", status_code=201)
    def register(payload: RegisterPayload, users: UserSvcDep, deadline: DeadlineDep):
        return UserInfoResp.model_validate(users.register(payload, deadline=deadline))

    @app.post("/auth/login")
    def login(
        payload: LoginPayload,
        users: UserSvcDep,
        deadline: DeadlineDep,
        response: Response,
    ):
        login_session = users.login(payload.username, payload.password, deadline)
        response.set_cookie(
            "session_id",
            str(login_session.id),
            expires=datetime.fromtimestamp(login_session.expire_at, timezone.utc),
            httponly=True,
        )
        return LoginResp(token=login_session.id, expires_at=login_session.expire_at)

    @app.post("/auth/logout", status_code=204)
    def logout(
        login: LoginSessDep,
        users: UserSvcDep,
        deadline: DeadlineDep,
        response: Response,
    ):
        response.delete_cookie("session_id")
        users.logout(login[0], deadline)

    # users

    @app.get("/users/me")
    def me(user: CurrentUser):
        return UserInfoResp.model_validate(user)

    @app.put("/users/me")
    def update_me(
        payload: UserPatch,
        user: CurrentUser,
        users: UserSvcDep,
        deadline: DeadlineDep,
    ):
        return UserInfoResp.model_validate(users.update(user.id, payload, deadline))

    # books

    @app.get("/books", response_model=list[Book])
    def list_books(
        catalog: CatalogDep,
        deadline: DeadlineDep,
        limit: Limit = 20,
        offset: Offset = 0,
    ):
        return catalog.list(limit, offset, deadline)

    @app.get("/books/{book_id}", response_model=Book)
    def get_book(book_id: uuid.UUID, catalog: CatalogDep, deadline: DeadlineDep):
        return catalog.get_by_id(book_id, deadline)

    @app.post("/books", status_code=201, response_model=Book)
    def add_book(
        payload: BookAddPayload,
        catalog: CatalogDep,
        deadline: DeadlineDep,
        _: AdminUser,
    ):
        return catalog.create(payload, deadline)

    @app.put("/books/{book_id}", response_model=Book)
    def modify_book(
        book_id: uuid.UUID,
        payload: BookPatch,
        catalog: CatalogDep,
        deadline: DeadlineDep,
        _: AdminUser,
    ):
        return catalog.update(book_id, payload, deadline)

    @app.delete("/books/{book_id}", status_code=204)
    def delete_book(
        book_id: uuid.UUID,
        catalog: CatalogDep,
        deadline: DeadlineDep,
        _: AdminUser,
    ):
        catalog.delete(book_id, deadline)

    # bookings

    @app.post("/bookings", status_code=201, response_model=Booking)
    def borrow(
        payload: BorrowPayload,
        user: CurrentUser,
        bookings: BookingDep,
        deadline: DeadlineDep,
    ):
        return bookings.borrow(user.id, payload.book_id, payload.borrow_days, deadline)

    @app.get("/bookings", response_model=list[Booking])
    def my_bookings(
        user: CurrentUser,
        bookings: BookingDep,
        deadline: DeadlineDep,
        limit: Limit = 20,
        offset: Offset = 0,
    ):
        return bookings.get_by_user(user.id, limit, offset, deadline)

    def owned_booking(
        booking_id: uuid.UUID, user: User, bookings: BookingEngine, deadline: Deadline
    ) -> Booking:
        booking = bookings.get_by_id(booking_id, deadline)
        if booking.user_id != user.id and user.role != Role.ADMIN:
            raise Forbidden("forbidden")
        return booking

    @app.get("/bookings/{booking_id}", response_model=Booking)
    def get_booking(
        booking_id: uuid.UUID,
        user: CurrentUser,
        bookings: BookingDep,
        deadline: DeadlineDep,
    ):
        return owned_booking(booking_id, user, bookings, deadline)

    @app.post("/bookings/{booking_id}/return", response_model=Booking)
    def return_book(
        booking_id: uuid.UUID,
        user: CurrentUser,
        bookings: BookingDep,
        deadline: DeadlineDep,
    ):
        owned_booking(booking_id, user, bookings, deadline)
        return bookings.return_booking(booking_id, deadline)

    # admin

    @app.get("/admin/bookings", response_model=list[Booking])
    def all_bookings(
        bookings: BookingDep,
        deadline: DeadlineDep,
        _: AdminUser,
        limit: Limit = 20,
        offset: Offset = 0,
    ):
        return bookings.list(limit, offset, deadline)

    @app.post("/admin/bookings/overdue")
    def sweep_overdue(bookings: BookingDep, deadline: DeadlineDep, _: AdminUser):
        return {"updated": bookings.update_overdue(deadline)}

    @app.post("/admin/users", status_code=201)
    def register_admin(
        payload: RegisterPayload,
        users: UserSvcDep,
        deadline: DeadlineDep,
        _: AdminUser,
    ):
        return UserInfoResp.model_validate(users.register_admin(payload, deadline))

    @app.get("/admin/users")
    def list_users(
        users: UserSvcDep,
        deadline: DeadlineDep,
        _: AdminUser,
        limit: Limit = 20,
        offset: Offset = 0,
    ):
        return [
            UserInfoResp.model_validate(u) for u in users.list(limit, offset, deadline)
        ]

    @app.get("/admin/users/{user_id}")
    def get_user(
        user_id: uuid.UUID, users: UserSvcDep, deadline: DeadlineDep, _: AdminUser
    ):
        return UserInfoResp.model_validate(users.get_by_id(user_id, deadline))

    @app.delete("/admin/users/{user_id}", status_code=204)
    def delete_user(
        user_id: uuid.UUID, users: UserSvcDep, deadline: DeadlineDep, _: AdminUser
    ):
        users.delete(user_id, deadline)

    return app
