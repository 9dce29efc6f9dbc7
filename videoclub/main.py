from contextlib import asynccontextmanager
import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from videoclub.config import LOG_FORMAT, LOG_LEVEL, SEED_ON_STARTUP
from videoclub.db import SessionLocal, engine as default_engine, init_db
from videoclub.errors import NotFoundError, RentalError
from videoclub.schemas import (
    CopyCreate,
    CopyResponse,
    LoginRequest,
    LoginResponse,
    MovieCreate,
    MovieDetailResponse,
    MovieResponse,
    MovieUpdate,
    RentedCopyResponse,
    UserResponse,
)
from videoclub.seed import seed_database
from videoclub.services import RentalService
from videoclub.session import SELECTED_MOVIE, SessionContext, SessionRegistry

logger = logging.getLogger(__name__)


def get_service(request: Request) -> RentalService:
    return request.app.state.service


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_session_token(x_session_token: Optional[str] = Header(default=None)) -> str:
    if not x_session_token:
        raise HTTPException(status_code=401, detail="Not logged in")
    return x_session_token


def get_context(
    token: str = Depends(get_session_token),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionContext:
    context = registry.get(token)
    if context is None:
        raise HTTPException(status_code=401, detail="Session expired")
    return context


def require_admin(context: SessionContext = Depends(get_context)) -> SessionContext:
    if not context.is_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return context


def create_app(
    session_factory: sessionmaker = SessionLocal,
    bind: Engine = default_engine,
    seed: bool = SEED_ON_STARTUP,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(bind)
        if seed:
            seed_database(session_factory)
        yield

    app = FastAPI(title="Videoclub", lifespan=lifespan)
    app.state.service = RentalService(session_factory)
    app.state.sessions = SessionRegistry()

    @app.post("/api/login", response_model=LoginResponse)
    def login(
        payload: LoginRequest,
        service: RentalService = Depends(get_service),
        registry: SessionRegistry = Depends(get_registry),
    ):
        user = service.authenticate(payload.username, payload.password)
        if user is None:
            raise HTTPException(status_code=401, detail="Invalid username or password")
        token, _ = registry.open(user)
        logger.info("User %s logged in.", user.username)
        return LoginResponse(token=token, user=user)

    @app.post("/api/logout")
    def logout(
        token: str = Depends(get_session_token),
        registry: SessionRegistry = Depends(get_registry),
    ):
        if not registry.close(token):
            raise HTTPException(status_code=401, detail="Session expired")
        return {"logged_out": True}

    @app.get("/api/me", response_model=UserResponse)
    def current_user(
        context: SessionContext = Depends(get_context),
        service: RentalService = Depends(get_service),
    ):
        user = service.fetch_user_with_assigned_copy(context.user.id)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        context.user = user
        return user

    @app.get("/api/movies", response_model=List[MovieResponse])
    def list_movies(
        context: SessionContext = Depends(get_context),
        service: RentalService = Depends(get_service),
    ):
        return service.list_movies()

    @app.get("/api/movies/{movie_id}", response_model=MovieDetailResponse)
    def movie_detail(
        movie_id: int,
        context: SessionContext = Depends(get_context),
        service: RentalService = Depends(get_service),
    ):
        movie = service.get_movie(movie_id)
        if movie is None:
            raise HTTPException(status_code=404, detail="Movie not found")
        context.set(SELECTED_MOVIE, movie)
        return movie

    @app.post("/api/movies", response_model=MovieResponse, status_code=201)
    def create_movie(
        payload: MovieCreate,
        context: SessionContext = Depends(require_admin),
        service: RentalService = Depends(get_service),
    ):
        return service.create_movie(payload)

    @app.put("/api/movies/{movie_id}", response_model=MovieResponse)
    def update_movie(
        movie_id: int,
        payload: MovieUpdate,
        context: SessionContext = Depends(require_admin),
        service: RentalService = Depends(get_service),
    ):
        movie = service.update_movie(movie_id, payload)
        if movie is None:
            raise HTTPException(status_code=404, detail="Movie not found")
        context.set(SELECTED_MOVIE, None)
        return movie

    @app.delete("/api/movies/{movie_id}")
    def delete_movie(
        movie_id: int,
        context: SessionContext = Depends(require_admin),
        service: RentalService = Depends(get_service),
    ):
        if not service.remove_movie(movie_id):
            raise HTTPException(status_code=404, detail="Movie not found")
        context.set(SELECTED_MOVIE, None)
        return {"deleted": movie_id}

    @app.post("/api/movies/{movie_id}/copies", response_model=CopyResponse, status_code=201)
    def add_copy(
        movie_id: int,
        payload: CopyCreate,
        context: SessionContext = Depends(require_admin),
        service: RentalService = Depends(get_service),
    ):
        copy = service.add_copy(movie_id, payload.medium)
        if copy is None:
            raise HTTPException(status_code=404, detail="Movie not found")
        return copy

    @app.post("/api/movies/{movie_id}/rent", response_model=RentedCopyResponse)
    def rent_movie(
        movie_id: int,
        context: SessionContext = Depends(get_context),
        service: RentalService = Depends(get_service),
    ):
        if context.is_admin:
            raise HTTPException(status_code=403, detail="Administrators cannot rent copies")
        try:
            copy = service.assign_copy(context.user.id, movie_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except RentalError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        context.user = service.fetch_user_with_assigned_copy(context.user.id) or context.user
        return copy

    @app.post("/api/me/return", response_model=RentedCopyResponse)
    def return_copy(
        context: SessionContext = Depends(get_context),
        service: RentalService = Depends(get_service),
    ):
        try:
            copy = service.release_copy(context.user.id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except RentalError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        context.user = service.fetch_user_with_assigned_copy(context.user.id) or context.user
        return copy

    return app


logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
app = create_app()
