import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Depends, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from dotenv import load_dotenv

# Importaciones locales
from account_service import schemas
from account_service.db import create_db_engine, get_database_url
from account_service.directory import (
    AccountDirectory,
    AccountError,
    ConflictError,
    InvalidCredentialsError,
    InvalidInputError,
    NotFoundError,
    StoreUnavailableError,
)
from account_service.store import UserStore
from account_service.utils import CredentialService

# Carga variables de entorno
load_dotenv()

# Configura logger
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# --- Métricas Prometheus ---
REQUEST_COUNT = Counter(
    "account_requests_total",
    "Total requests processed by Account Service",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "account_request_latency_seconds",
    "Request latency in seconds for Account Service",
    ["endpoint"]
)

# Código HTTP para cada error del directorio
ERROR_STATUS_CODES = {
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
    ConflictError: status.HTTP_400_BAD_REQUEST,
    InvalidCredentialsError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    StoreUnavailableError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_cors_origins() -> List[str]:
    raw = os.getenv("CORS_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_directory(request: Request) -> AccountDirectory:
    return request.app.state.directory


def create_app(
    store: Optional[UserStore] = None,
    credentials: Optional[CredentialService] = None,
) -> FastAPI:
    """
    Construye la aplicación FastAPI.

    Si no se inyectan `store` o `credentials`, se crean desde el entorno al
    arrancar. La conexión a la base de datos se abre en el arranque y se
    cierra en el apagado.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        user_store = store
        if user_store is None:
            database_url = get_database_url()
            if not database_url:
                raise RuntimeError("No hay configuración de base de datos (DATABASE_URL o DB_*).")
            # Los reintentos de conexión duermen; se ejecutan fuera del event loop
            engine = await asyncio.to_thread(create_db_engine, database_url)
            user_store = UserStore(engine)
        await asyncio.to_thread(user_store.initialize)

        app.state.directory = AccountDirectory(
            user_store, credentials or CredentialService.from_env()
        )
        logger.info("Account Service listo.")
        try:
            yield
        finally:
            user_store.close()

    app = FastAPI(
        title="Account Service",
        description="Handles user registration, authentication and account management.",
        version="1.0.0",
        lifespan=lifespan,
    )

    # --- Configuración de CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=7200,
    )

    # --- Middleware para Métricas ---
    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start_time = time.time()
        response = None
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as exc:
            logger.error(f"Unhandled exception during request processing: {exc}", exc_info=True)
            response = JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
        finally:
            latency = time.time() - start_time
            # Usa la plantilla de la ruta para no crear una serie por cada id
            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)
            final_status_code = getattr(response, "status_code", status_code)

            REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=final_status_code
            ).inc()

        return response

    # --- Manejo de errores ---
    @app.exception_handler(AccountError)
    async def account_error_handler(request: Request, exc: AccountError):
        status_code = ERROR_STATUS_CODES.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
        return JSONResponse(status_code=status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Error de validación: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Invalid request body"},
        )

    # --- Endpoints de Salud y Métricas ---
    @app.get("/metrics", tags=["Monitoring"])
    def metrics():
        """Exposes application metrics for Prometheus."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/health", tags=["Monitoring"])
    def health_check():
        return {"status": "ok", "service": "account_service"}

    # --- Endpoints de API ---

    @app.post("/register", response_model=schemas.UserResponse, tags=["Authentication"])
    def register(user: schemas.UserCreate, directory: AccountDirectory = Depends(get_directory)):
        return directory.register(user.name, user.email, user.password)

    @app.get("/users", response_model=List[schemas.UserResponse], tags=["Users"])
    def list_users(directory: AccountDirectory = Depends(get_directory)):
        return directory.list_users()

    @app.delete("/user/delete/{user_id}", response_model=List[schemas.UserResponse], tags=["Users"])
    def delete_user(user_id: str, directory: AccountDirectory = Depends(get_directory)):
        """Elimina un usuario y devuelve los usuarios restantes."""
        return directory.delete_one(user_id)

    @app.post("/login", response_model=schemas.Token, tags=["Authentication"])
    def login(login_data: schemas.UserLogin, directory: AccountDirectory = Depends(get_directory)):
        """
        Autentica al usuario. Cualquier fallo de credenciales responde 400;
        solo un fallo de la base de datos responde 500.
        """
        try:
            token = directory.authenticate(login_data.email, login_data.password)
        except (InvalidInputError, NotFoundError, InvalidCredentialsError) as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.detail)
        return {"token": token}

    @app.put("/users/update/{user_id}", response_model=schemas.UserResponse, tags=["Users"])
    def update_user(
        user_id: str,
        fields: schemas.UserUpdate,
        directory: AccountDirectory = Depends(get_directory),
    ):
        return directory.update(user_id, fields.model_dump(exclude_unset=True))

    @app.delete("/users/delete", response_model=List[schemas.UserResponse], tags=["Users"])
    def delete_users(req: schemas.UserBulkDelete, directory: AccountDirectory = Depends(get_directory)):
        """Elimina varios usuarios por id y devuelve los usuarios restantes."""
        return directory.delete_many(req.ids)

    return app


app = create_app()


def run() -> None:
    import uvicorn

    port = int(os.getenv("PORT", 4100))
    logger.info(f"Server is running on http://localhost:{port}")
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    run()
