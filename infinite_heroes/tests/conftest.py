import pytest
from fastapi.testclient import TestClient

from infinite_heroes.api import comic as comic_api
from infinite_heroes.comic.cast import set_cast
from infinite_heroes.comic.context import StaticStoryContext
from infinite_heroes.core.graph.session import ComicSessionController
from infinite_heroes.core.graph.workflow import GenerationDriver
from infinite_heroes.main import app
from infinite_heroes.schemas.comic import CastMember, Role
from infinite_heroes.tests.fakes import ScriptedPainter, ScriptedWriter


@pytest.fixture(name="cast_members")
def cast_members_fixture():
    """Aria, Bram and The Null."""
    return {
        "hero": CastMember(name="Aria", description="Pilot with a silver jacket", portrait_image="aria.png", role=Role.HERO),
        "costar": CastMember(name="Bram", description="Mechanic with goggles", portrait_image="bram.png", role=Role.COSTAR),
        "villain": CastMember(name="The Null", description="A void in a cloak", portrait_image="null.png", role=Role.VILLAIN),
    }


@pytest.fixture(name="cast")
def cast_fixture(cast_members):
    return set_cast(cast_members["hero"], cast_members["costar"], cast_members["villain"])


@pytest.fixture(name="story_context")
def story_context_fixture():
    return StaticStoryContext(
        premise="A crew drifts through dead space",
        scene_summaries=["Aria finds a beacon", "Bram fixes the engine", "The Null awakens", "Epilogue"],
    )


@pytest.fixture(name="writer")
def writer_fixture():
    return ScriptedWriter()


@pytest.fixture(name="painter")
def painter_fixture():
    return ScriptedPainter()


@pytest.fixture(name="controller")
def controller_fixture(writer, painter, story_context):
    driver = GenerationDriver(writer=writer, painter=painter, story_context=story_context)
    return ComicSessionController(driver, page_limit=10)


@pytest.fixture(name="client")
def client_fixture(writer, painter):
    app.dependency_overrides[comic_api.get_writer] = lambda: writer
    app.dependency_overrides[comic_api.get_painter] = lambda: painter

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    comic_api.comic_sessions.clear()
    comic_api.session_last_seen.clear()


@pytest.fixture(name="cast_payload")
def cast_payload_fixture():
    return {
        "genre": "Sci-Fi",
        "hero": {"name": "Aria", "description": "Pilot with a silver jacket", "portrait_image": "aria.png"},
        "costar": {"name": "Bram", "description": "Mechanic with goggles", "portrait_image": "bram.png"},
        "villain": {"name": "The Null", "description": "A void in a cloak", "portrait_image": "null.png"},
        "premise": "A crew drifts through dead space",
        "scenes": ["Aria finds a beacon"],
    }
