from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

from fastapi import Depends, FastAPI, Request, Security, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader

from accounts import AccountService, SessionIssuer
from catalog import CatalogService
from config import Settings, load_settings
from database import connect
from errors import AuthError, NotFoundError, PharmacyError
from logging_config import add_context, clear_context, configure_logging, get_logger
from memory_stores import memory_stores
from notifications import NotificationDispatcher, build_dispatcher
from orders import OrderWorkflow
from schemas import (
    Account,
    Confirmation,
    LoginRequest,
    Order,
    OrderCreate,
    OrderStatusUpdate,
    Product,
    ProductCreate,
    ProductUpdate,
    RegisterRequest,
    Token,
)
from stores import Stores, mongo_stores

configure_logging()
logger = get_logger(__name__)

API_NAME = "Abu-Khadija Pharmacy API"

# Raw token in the Authorization header; a "Bearer " prefix is also accepted.
token_header = APIKeyHeader(name="Authorization", auto_error=False)


@dataclass
class Services:
    settings: Settings
    stores: Stores
    notifier: NotificationDispatcher
    accounts: AccountService
    sessions: SessionIssuer
    catalog: CatalogService
    orders: OrderWorkflow


def build_services(
    settings: Settings,
    stores: Stores | None = None,
    notifier: NotificationDispatcher | None = None,
) -> Services:
    if stores is None:
        if settings.database_url:
            stores = mongo_stores(connect(settings.database_url, settings.database_name))
        else:
            logger.warning("DATABASE_URL not set, using in-memory stores; data is lost on restart")
            stores = memory_stores()
    if notifier is None:
        notifier = build_dispatcher(settings)

    accounts = AccountService(stores.accounts, password_hash_rounds=settings.password_hash_rounds)
    sessions = SessionIssuer(
        accounts,
        secret_key=settings.secret_key,
        algorithm=settings.algorithm,
        expire_minutes=settings.access_token_expire_minutes,
    )
    catalog = CatalogService(stores.products)
    orders = OrderWorkflow(catalog, stores.orders, stores.accounts, notifier)
    return Services(
        settings=settings,
        stores=stores,
        notifier=notifier,
        accounts=accounts,
        sessions=sessions,
        catalog=catalog,
        orders=orders,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_current_account_id(
    token: Optional[str] = Security(token_header),
    services: Services = Depends(get_services),
) -> str:
    account_id = services.sessions.verify(token)
    try:
        services.accounts.get(account_id)
    except NotFoundError:
        raise AuthError("invalid") from None
    return account_id


def create_app(services: Services | None = None) -> FastAPI:
    services = services or build_services(load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services.stores.open()
        logger.info("Pharmacy API started", backend=services.stores.backend)
        yield
        services.notifier.shutdown(wait=True)
        services.stores.close()

    app = FastAPI(title=API_NAME, lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        add_context(method=request.method, path=request.url.path)
        try:
            return await call_next(request)
        finally:
            clear_context()

    @app.exception_handler(PharmacyError)
    async def pharmacy_error_handler(request: Request, exc: PharmacyError):
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
        if exc.status_code >= 500:
            logger.error("Request failed", error=exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    @app.get("/")
    def read_root():
        return {"name": API_NAME, "status": "ok"}

    @app.get("/test")
    def test_database(services: Services = Depends(get_services)):
        return {"backend": "running", **services.stores.health()}

    # Accounts

    @app.post("/register", status_code=status.HTTP_201_CREATED, response_model=Confirmation)
    @app.post("/patients", status_code=status.HTTP_201_CREATED, response_model=Confirmation, include_in_schema=False)
    def register(body: RegisterRequest, services: Services = Depends(get_services)):
        account_id = services.accounts.register(
            name=body.name,
            email=body.email,
            phone=body.phone,
            password=body.password,
        )
        return Confirmation(message="Patient created", id=account_id)

    @app.post("/login", response_model=Token)
    def login(body: LoginRequest, services: Services = Depends(get_services)):
        return Token(token=services.sessions.login(body.email, body.password))

    @app.get("/me", response_model=Account)
    def me(
        account_id: str = Depends(get_current_account_id),
        services: Services = Depends(get_services),
    ):
        return services.accounts.get(account_id)

    # Catalog (administrative writes are trusted)

    @app.post("/drugs", status_code=status.HTTP_201_CREATED, response_model=Confirmation)
    @app.post("/add-drug", status_code=status.HTTP_201_CREATED, response_model=Confirmation, include_in_schema=False)
    def create_product(body: ProductCreate, services: Services = Depends(get_services)):
        product_id = services.catalog.add_product(body.model_dump())
        return Confirmation(message="Drug added", id=product_id)

    @app.get("/drugs", response_model=List[Product])
    @app.get("/products", response_model=List[Product], include_in_schema=False)
    def list_products(category: Optional[str] = None, services: Services = Depends(get_services)):
        return services.catalog.list_products(category=category)

    @app.get("/drugs/{product_id}", response_model=Product)
    def get_product(product_id: str, services: Services = Depends(get_services)):
        return services.catalog.get_product(product_id)

    @app.put("/drugs/{product_id}", response_model=Confirmation)
    def update_product(product_id: str, body: ProductUpdate, services: Services = Depends(get_services)):
        services.catalog.update_product(product_id, body.model_dump(exclude_unset=True))
        return Confirmation(message="Drug updated", id=product_id)

    @app.delete("/drugs/{product_id}", response_model=Confirmation)
    def delete_product(product_id: str, services: Services = Depends(get_services)):
        services.catalog.delete_product(product_id)
        return Confirmation(message="Drug deleted", id=product_id)

    # Orders

    @app.post("/orders", status_code=status.HTTP_201_CREATED, response_model=Confirmation)
    def create_order(
        body: OrderCreate,
        account_id: str = Depends(get_current_account_id),
        services: Services = Depends(get_services),
    ):
        order_id = services.orders.place_order(
            account_id=account_id,
            line_items=[item.model_dump() for item in body.line_items],
            delivery_address=body.delivery_address,
        )
        return Confirmation(message="Order saved", id=order_id)

    @app.get("/orders", response_model=List[Order])
    def list_orders(
        account_id: str = Depends(get_current_account_id),
        services: Services = Depends(get_services),
    ):
        return services.orders.list_orders(account_id=account_id)

    @app.get("/orders/{order_id}", response_model=Order)
    def get_order(
        order_id: str,
        account_id: str = Depends(get_current_account_id),
        services: Services = Depends(get_services),
    ):
        order = services.orders.get_order(order_id)
        if order["account_id"] != account_id:
            raise NotFoundError("Order", order_id)
        return order

    @app.put("/orders/{order_id}", response_model=Confirmation)
    def update_order_status(order_id: str, body: OrderStatusUpdate, services: Services = Depends(get_services)):
        order = services.orders.update_order_status(order_id, body.status)
        return Confirmation(message=f"Order status set to {order['status']}", id=order_id)


if __name__ == "__main__":
    import uvicorn

    # The app is built on startup: uvicorn main:create_app --factory
    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=load_settings().port)
