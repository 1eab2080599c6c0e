import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware

import database
from admin import (
    ORDER_LIST_LIMIT,
    OrderRecorder,
    ProductSaveError,
    delete_order,
    delete_product,
    list_all_products,
    list_orders,
    order_display_total,
    orders_revenue,
    save_product,
)
from auth import AdminAuth, get_auth, get_current_admin, get_optional_session, security
from cart import Cart, CartError, CartRegistry
from catalog import ALL_CATEGORIES, fetch_product, query_catalog
from checkout import EmptyCartError, OrderPipeline
from config import AppConfig, configure_logging, get_config
from formatters import format_phone
from pricing import compute_total
from realtime import OrderFeed, merge_orders
from schemas import (
    CartAdd,
    CartView,
    CheckoutForm,
    CheckoutOut,
    ContactForm,
    LoginIn,
    OrderList,
    OrderOut,
    Product,
    ProductIn,
    SessionOut,
    SettingsUpdate,
    SortMode,
    StoreSettings,
    TokenOut,
)
from store_settings import SettingsSaveError, SettingsStore
from whatsapp import build_whatsapp_url, render_contact_message

logger = logging.getLogger(__name__)

SEED_PRODUCTS: List[dict] = [
    {
        "name": "Sofá Retrátil Milão",
        "description": "Sofá retrátil e reclinável com assento em molas ensacadas.",
        "category": "sofa",
        "price": 4890.0,
        "colors": ["Cinza", "Bege", "Grafite"],
        "fabrics": ["Linho", "Suede"],
        "dimensions": "2,30m x 1,10m x 0,95m",
        "images": ["https://images.unsplash.com/photo-1555041469-a586c61ea9bc?q=80&w=1200&auto=format&fit=crop"],
        "is_featured": True,
    },
    {
        "name": "Poltrona Oslo",
        "description": "Poltrona com pés de madeira maciça e encosto alto.",
        "category": "armchair",
        "price": 1590.0,
        "colors": ["Terracota", "Off-white"],
        "fabrics": ["Bouclé", "Linho"],
        "dimensions": "0,80m x 0,85m x 1,00m",
        "images": ["https://images.unsplash.com/photo-1567538096630-e0c55bd6374c?q=80&w=1200&auto=format&fit=crop"],
    },
    {
        "name": "Chaise Longue Veneza",
        "description": "Chaise com estrutura em eucalipto e espuma D33.",
        "category": "chaise",
        "price": 2750.0,
        "colors": ["Areia"],
        "fabrics": ["Veludo"],
        "dimensions": "1,70m x 0,70m x 0,85m",
        "images": ["https://images.unsplash.com/photo-1598300042247-d088f8ab3a91?q=80&w=1200&auto=format&fit=crop"],
    },
    {
        "name": "Puff Redondo Capri",
        "description": "Puff decorativo sob medida.",
        "category": "pouf",
        "price": 0,
        "colors": [],
        "fabrics": ["Bouclé"],
        "dimensions": "0,50m x 0,45m",
        "images": ["https://images.unsplash.com/photo-1586023492125-27b2c045efd7?q=80&w=1200&auto=format&fit=crop"],
    },
    {
        "name": "Cama Box Toscana",
        "description": "Cabeceira estofada com costura capitonê.",
        "category": "bed",
        "price": 3990.0,
        "colors": ["Grafite", "Bege"],
        "fabrics": ["Suede", "Linho"],
        "dimensions": "1,58m x 1,98m",
        "images": ["https://images.unsplash.com/photo-1505693416388-ac5ce068fe85?q=80&w=1200&auto=format&fit=crop"],
    },
]


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(config.LOG_LEVEL)
        settings_store = SettingsStore()
        await settings_store.load()
        feed = OrderFeed()

        app.state.settings_store = settings_store
        app.state.carts = CartRegistry(idle_seconds=config.CART_IDLE_MINUTES * 60, max_carts=config.MAX_CARTS)
        app.state.feed = feed
        app.state.auth = AdminAuth(
            secret=config.JWT_SECRET,
            admin_email=config.ADMIN_EMAIL,
            admin_password_hash=config.ADMIN_PASSWORD_HASH,
            algorithm=config.JWT_ALGORITHM,
            expiry_minutes=config.JWT_EXPIRY_MINUTES,
        )
        app.state.pipeline = OrderPipeline(
            settings_store=settings_store,
            save_order=OrderRecorder(feed),
            whatsapp_base_url=config.WHATSAPP_BASE_URL,
        )
        logger.info("Storefront API ready (store: %s)", settings_store.current.store_name)
        yield
        logger.info("Storefront API shutting down")
        database.close()

    app = FastAPI(title="Estofados Elite API", lifespan=lifespan)
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app


# Dependencies

def get_settings_store(request: Request) -> SettingsStore:
    return request.app.state.settings_store


def get_session_id(x_session_id: str = Header(..., min_length=1)) -> str:
    return x_session_id


def get_carts(request: Request) -> CartRegistry:
    return request.app.state.carts


def get_pipeline(request: Request) -> OrderPipeline:
    return request.app.state.pipeline


def cart_view(cart: Optional[Cart]) -> CartView:
    if cart is None:
        return CartView(items=[], total_items=0, total_price=0.0)
    lines = cart.lines
    return CartView(items=lines, total_items=cart.total_item_count(), total_price=float(compute_total(lines)))


def order_out(order: Dict[str, Any]) -> OrderOut:
    return OrderOut(
        **order,
        display_total=float(order_display_total(order)),
        customer_phone_display=format_phone(order.get("customer_phone") or ""),
    )


def register_routes(app: FastAPI) -> None:

    @app.get("/")
    async def root():
        return {"message": "Estofados Elite Backend Running"}

    @app.get("/test")
    async def test():
        try:
            colls = await database.list_collections()
            return {
                "backend": "✅ Running",
                "database": "✅ Available",
                "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
                "database_name": app.state.config.DATABASE_NAME,
                "connection_status": "Connected",
                "collections": colls,
            }
        except Exception as e:
            logger.warning("Database check failed: %s", e)
            return {"backend": "✅ Running", "database": "❌ Not Available", "error": str(e)}

    @app.post("/seed")
    async def seed():
        if await database.count_documents("products") > 0:
            return {"seeded": False, "message": "Products already exist"}
        for p in SEED_PRODUCTS:
            await database.create_document("products", Product(**p).model_dump(exclude={"id", "created_at"}))
        logger.info("Seeded %d products", len(SEED_PRODUCTS))
        return {"seeded": True, "count": len(SEED_PRODUCTS)}

    # ---------------- catalog ----------------

    @app.get("/products", response_model=List[Product])
    async def get_products(
        q: Optional[str] = Query(None),
        category: str = Query(ALL_CATEGORIES),
        sort: SortMode = Query(SortMode.newest),
    ):
        return await query_catalog(category=category, search=q, sort=sort)

    @app.get("/products/{product_id}", response_model=Product)
    async def get_product(product_id: str):
        product = await fetch_product(product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return product

    @app.get("/settings", response_model=StoreSettings)
    async def get_settings(store: SettingsStore = Depends(get_settings_store)):
        return store.current

    # ---------------- cart ----------------

    @app.get("/cart", response_model=CartView)
    async def show_cart(session_id: str = Depends(get_session_id), carts: CartRegistry = Depends(get_carts)):
        return cart_view(carts.peek(session_id))

    @app.post("/cart", response_model=CartView, status_code=201)
    async def add_to_cart(
        item: CartAdd,
        session_id: str = Depends(get_session_id),
        carts: CartRegistry = Depends(get_carts),
    ):
        product = await fetch_product(item.product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        cart = carts.get(session_id)
        try:
            cart.add_item(product, item.quantity, item.color, item.fabric)
        except CartError as e:
            if cart.is_empty():
                carts.discard(session_id)
            raise HTTPException(status_code=400, detail=str(e))
        return cart_view(cart)

    @app.delete("/cart/{product_id}", response_model=CartView)
    async def remove_from_cart(
        product_id: str,
        session_id: str = Depends(get_session_id),
        carts: CartRegistry = Depends(get_carts),
    ):
        cart = carts.peek(session_id)
        if cart is not None:
            cart.remove_item(product_id)
            if cart.is_empty():
                carts.discard(session_id)
        return cart_view(carts.peek(session_id))

    @app.delete("/cart", response_model=CartView)
    async def clear_cart(session_id: str = Depends(get_session_id), carts: CartRegistry = Depends(get_carts)):
        carts.discard(session_id)
        return cart_view(None)

    # ---------------- checkout ----------------

    @app.post("/checkout", response_model=CheckoutOut)
    async def checkout(
        form: CheckoutForm,
        session_id: str = Depends(get_session_id),
        carts: CartRegistry = Depends(get_carts),
        pipeline: OrderPipeline = Depends(get_pipeline),
    ):
        try:
            result = await pipeline.submit(carts.peek(session_id) or Cart(), form)
        except EmptyCartError:
            raise HTTPException(status_code=400, detail="Your cart is empty")
        carts.discard(session_id)
        return CheckoutOut(
            order_id=result.order_id,
            persisted=result.persisted,
            warning=result.warning,
            total_price=float(result.total),
            message=result.message,
            whatsapp_url=result.whatsapp_url,
            redirect_to=result.redirect_to,
        )

    @app.post("/contact")
    async def contact(form: ContactForm, store: SettingsStore = Depends(get_settings_store)):
        text = render_contact_message(form.name, form.subject, form.message)
        url = build_whatsapp_url(app.state.config.WHATSAPP_BASE_URL, store.current.whatsapp_number, text)
        return {"whatsapp_url": url}

    # ---------------- auth ----------------

    @app.post("/auth/login", response_model=TokenOut)
    async def login(payload: LoginIn, auth: AdminAuth = Depends(get_auth)):
        token = auth.sign_in(payload.email, payload.password)
        if token is None:
            raise HTTPException(status_code=401, detail="Invalid email or password")
        return TokenOut(access_token=token, expires_in=auth.expiry_minutes * 60)

    @app.get("/auth/session", response_model=SessionOut)
    async def session(current: Optional[dict] = Depends(get_optional_session)):
        if not current:
            return SessionOut(has_session=False)
        return SessionOut(has_session=True, email=current.get("sub"))

    @app.post("/auth/logout")
    async def logout(credentials=Depends(security), auth: AdminAuth = Depends(get_auth)):
        signed_out = bool(credentials) and auth.sign_out(credentials.credentials)
        return {"signed_out": signed_out}

    # ---------------- admin: products ----------------

    @app.get("/admin/products")
    async def admin_products(admin: dict = Depends(get_current_admin)):
        return await list_all_products()

    @app.post("/admin/products", status_code=201)
    async def admin_create_product(data: ProductIn, admin: dict = Depends(get_current_admin)):
        try:
            return await save_product(data)
        except ProductSaveError as e:
            raise HTTPException(status_code=500, detail=str(e))

    @app.put("/admin/products/{product_id}")
    async def admin_update_product(product_id: str, data: ProductIn, admin: dict = Depends(get_current_admin)):
        try:
            saved = await save_product(data, product_id)
        except ProductSaveError as e:
            raise HTTPException(status_code=500, detail=str(e))
        if saved is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return saved

    @app.delete("/admin/products/{product_id}")
    async def admin_delete_product(product_id: str, admin: dict = Depends(get_current_admin)):
        if not await delete_product(product_id):
            raise HTTPException(status_code=404, detail="Product not found")
        return {"deleted": True}

    # ---------------- admin: orders ----------------

    @app.get("/admin/orders", response_model=OrderList)
    async def admin_orders(
        q: Optional[str] = Query(None),
        date: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
        limit: int = Query(ORDER_LIST_LIMIT, ge=1, le=5000),
        admin: dict = Depends(get_current_admin),
    ):
        orders = await list_orders(search=q, on_date=date, limit=limit)
        return OrderList(
            orders=[order_out(o) for o in orders],
            count=len(orders),
            revenue=float(orders_revenue(orders)),
        )

    @app.get("/admin/orders/{order_id}", response_model=OrderOut)
    async def admin_order(order_id: str, admin: dict = Depends(get_current_admin)):
        order = await database.get_document("orders", order_id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        return order_out(order)

    @app.delete("/admin/orders/{order_id}")
    async def admin_delete_order(order_id: str, admin: dict = Depends(get_current_admin)):
        if not await delete_order(order_id):
            raise HTTPException(status_code=404, detail="Order not found")
        return {"deleted": True}

    @app.websocket("/admin/orders/feed")
    async def admin_order_feed(websocket: WebSocket, token: str = Query("")):
        """
        Sends one SNAPSHOT of the current orders, then an INSERT event per new
        order. Inserts that land while the snapshot is loading are merged into
        it by id, so the client never sees an order twice.
        """
        if not websocket.app.state.auth.verify(token):
            await websocket.close(code=1008)
            return
        feed: OrderFeed = websocket.app.state.feed
        # subscribe before loading the snapshot so no insert falls between the two
        queue = feed.subscribe()

        async def forward():
            while True:
                event = await queue.get()
                await websocket.send_json(jsonable_encoder(event))

        sender = None
        try:
            await websocket.accept()
            try:
                snapshot = await list_orders()
            except Exception as e:
                logger.warning("Order feed snapshot failed: %s", e)
                snapshot = []
            pending = []
            while not queue.empty():
                pending.append(queue.get_nowait()["record"])
            await websocket.send_json(jsonable_encoder({
                "type": "SNAPSHOT",
                "table": "orders",
                "records": merge_orders(snapshot, pending),
            }))
            sender = asyncio.create_task(forward())
            # the client never sends anything, receiving only detects the disconnect
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug("Order feed subscriber disconnected")
        finally:
            feed.unsubscribe(queue)
            if sender is not None:
                sender.cancel()
                with suppress(asyncio.CancelledError, Exception):
                    await sender

    # ---------------- admin: settings ----------------

    @app.put("/admin/settings", response_model=StoreSettings)
    async def admin_update_settings(
        changes: SettingsUpdate,
        store: SettingsStore = Depends(get_settings_store),
        admin: dict = Depends(get_current_admin),
    ):
        try:
            return await store.update(changes.model_dump(exclude_none=True))
        except SettingsSaveError as e:
            raise HTTPException(status_code=502, detail=str(e))


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
