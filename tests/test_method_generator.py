"""Tests for method and parameter extraction."""

import pytest

from routemeta.exceptions import GenerateMetadataError
from routemeta.ir.models import ArrayType, ParameterSource, PrimitiveType
from routemeta.ir.program import Program
from routemeta.metadata.metadata_generator import MetadataGenerator
from routemeta.metadata.method_generator import parse_docstring

HEADER = """
from dataclasses import dataclass

from routemeta.runtime import (
    Body,
    BodyProp,
    Deprecated,
    Example,
    Get,
    Header,
    Hidden,
    Inject,
    NoSecurity,
    OperationId,
    Path,
    Post,
    Produces,
    Put,
    Query,
    Request,
    Response,
    Route,
    Security,
    SuccessResponse,
    Tags,
)

@dataclass
class User:
    id: int
    name: str

@dataclass
class UserCreate:
    name: str
"""


def _generate(code: str):
    program = Program.from_source(HEADER + code, path="controllers.py")
    return MetadataGenerator(program=program).generate()


def _methods(code: str) -> dict:
    metadata = _generate(code)
    return {m.name: m for c in metadata.controllers for m in c.methods}


USERS = '''
@Route("users")
@Tags("users")
@Security("api_key")
@Response[str]("401", "Unauthorized")
class UsersController:
    @Get("{user_id}")
    @Tags("read", "users")
    def get_user(self, user_id: int) -> User:
        """Fetch one user.

        Looks the user up by id.

        Args:
            user_id: Identifier of the user
                to fetch.
        """

    @Post()
    @Security("oauth", ["write"])
    @SuccessResponse("201", "Created")
    @Response[str]("409", "Conflict")
    @Example({"id": 1, "name": "Ada"})
    @OperationId("createUser")
    def create_user(self, body: UserCreate = Body()) -> User:
        pass

    @Get("health")
    @NoSecurity
    @Hidden
    @Deprecated
    @Produces("text/plain")
    async def health(self) -> None:
        pass

    def not_an_endpoint(self):
        pass
'''


# --- Inherited metadata ---


def test_tags_are_merged_without_duplicates():
    methods = _methods(USERS)
    assert methods["get_user"].tags == ["users", "read"]
    assert methods["create_user"].tags == ["users"]


def test_security_override_and_inheritance():
    methods = _methods(USERS)
    assert methods["get_user"].security == [{"api_key": []}]
    assert methods["create_user"].security == [{"oauth": ["write"]}]
    assert methods["health"].security == []


def test_hidden_and_method_flags():
    methods = _methods(USERS)
    health = methods["health"]
    assert health.is_hidden
    assert health.deprecated
    assert health.produces == "text/plain"
    assert not methods["get_user"].is_hidden
    assert methods["create_user"].operation_id == "createUser"
    assert "not_an_endpoint" not in methods


def test_hidden_controller_hides_every_method():
    methods = _methods('@Route("a")\n@Hidden\nclass A:\n    @Get()\n    def index(self) -> str:\n        pass\n')
    assert methods["index"].is_hidden


# --- Responses ---


def test_responses_order_and_success_response():
    methods = _methods(USERS)
    create = methods["create_user"]
    assert [r.name for r in create.responses] == ["401", "409", "201"]
    success = create.responses[-1]
    assert success.description == "Created"
    assert success.examples == [{"id": 1, "name": "Ada"}]
    assert success.schema.ref_name == "User"
    assert create.success_status == 201

    get_user = methods["get_user"]
    assert [r.name for r in get_user.responses] == ["401", "200"]
    assert get_user.responses[-1].description == "Ok"
    assert get_user.success_status == 200


def test_void_method_defaults_to_no_content():
    health = _methods(USERS)["health"]
    assert health.type == PrimitiveType("void")
    assert health.success_status == 204
    assert health.responses[-1].description == "No content"


def test_missing_return_annotation_is_any():
    methods = _methods('@Route("a")\nclass A:\n    @Get()\n    def index(self):\n        pass\n')
    assert methods["index"].type == PrimitiveType("any")


def test_method_response_needs_an_explicit_name():
    code = '@Route("a")\nclass A:\n    @Get()\n    @Response()\n    def index(self) -> str:\n        pass\n'
    with pytest.raises(GenerateMetadataError, match="Method's responses should have an explicit name."):
        _generate(code)
    with pytest.raises(GenerateMetadataError, match="Method's responses should have an explicit name."):
        _generate(code.replace("@Response()", '@Response(name="")'))


# --- Decorator rules ---


def test_only_one_http_method():
    code = '@Route("a")\nclass A:\n    @Get()\n    @Post()\n    def index(self) -> str:\n        pass\n'
    with pytest.raises(
        GenerateMetadataError,
        match="Only one HTTP Method decorator in 'index' method is acceptable, Found: Get, Post",
    ):
        _generate(code)


def test_single_use_method_decorators():
    code = '@Route("a")\nclass A:\n    @Get()\n    @OperationId("a")\n    @OperationId("b")\n    def index(self) -> str:\n        pass\n'
    with pytest.raises(GenerateMetadataError, match="Only one OperationId decorator allowed in 'index' method."):
        _generate(code)


def test_only_one_tags_decorator_per_method():
    code = '@Route("a")\nclass A:\n    @Get()\n    @Tags("x")\n    @Tags("y")\n    def index(self) -> str:\n        pass\n'
    with pytest.raises(GenerateMetadataError, match="Only one Tags decorator allowed in 'index' method."):
        _generate(code)


def test_verb_path_must_be_a_constant_string():
    code = 'import os\n\n@Route("a")\nclass A:\n    @Get(os.environ["P"])\n    def index(self) -> str:\n        pass\n'
    with pytest.raises(GenerateMetadataError, match="Get path in 'index' method must be a constant string."):
        _generate(code)

    methods = _methods('@Route("a")\nclass A:\n    @Get("")\n    def index(self) -> str:\n        pass\n')
    assert methods["index"].path == ""


def test_method_no_security_with_security():
    code = '@Route("a")\nclass A:\n    @Get()\n    @NoSecurity\n    @Security("x")\n    def index(self) -> str:\n        pass\n'
    with pytest.raises(GenerateMetadataError, match="NoSecurity decorator is unnecessary in 'index' method."):
        _generate(code)


# --- Parameters ---


def test_path_parameter_from_unmarked_argument():
    get_user = _methods(USERS)["get_user"]
    (param,) = get_user.parameters
    assert param.name == "user_id"
    assert param.in_ == ParameterSource.PATH
    assert param.type == PrimitiveType("integer")
    assert param.required
    assert param.description == "Identifier of the user to fetch."


def test_body_parameter():
    create = _methods(USERS)["create_user"]
    (param,) = create.parameters
    assert param.in_ == ParameterSource.BODY
    assert param.type.ref_name == "UserCreate"
    assert param.required


def test_query_header_and_request_parameters():
    code = '''
@Route("search")
class SearchController:
    @Get("{kind}")
    def search(
        self,
        kind: str = Path(),
        q: str | None = Query(),
        page: int = Query(default=1),
        tags: list[str] = Query("tag"),
        token: str = Header("X-Token"),
        request=Request(),
        service=Inject(),
    ) -> list[User]:
        pass
'''
    params = {p.name: p for p in _methods(code)["search"].parameters}
    assert params["kind"].in_ == ParameterSource.PATH
    assert not params["q"].required
    assert params["page"].default == 1
    assert not params["page"].required
    assert params["tags"].parameter_name == "tag"
    assert params["tags"].type == ArrayType(PrimitiveType("string"))
    assert params["tags"].required
    assert params["token"].in_ == ParameterSource.HEADER
    assert params["token"].parameter_name == "X-Token"
    assert params["request"].in_ == ParameterSource.REQUEST
    assert params["request"].type == PrimitiveType("object")
    assert params["service"].in_ == ParameterSource.INJECTED


def test_body_props():
    code = '''
@Route("users")
class UsersController:
    @Put("{user_id}")
    def rename(self, user_id: int, name: str = BodyProp(), note: str = BodyProp("comment", default="")) -> User:
        pass
'''
    params = {p.name: p for p in _methods(code)["rename"].parameters}
    assert params["name"].in_ == ParameterSource.BODY_PROP
    assert params["name"].required
    assert params["note"].parameter_name == "comment"
    assert not params["note"].required


def test_path_parameter_must_appear_in_url():
    code = '@Route("users")\nclass A:\n    @Get("all")\n    def index(self, user_id: int) -> str:\n        pass\n'
    with pytest.raises(GenerateMetadataError, match="@Path\\('user_id'\\) Can't match in URL: 'users/all'"):
        _generate(code)


def test_path_parameter_cannot_have_a_plain_default():
    code = '@Route("users")\nclass A:\n    @Get("{user_id}")\n    def index(self, user_id: int = 1) -> str:\n        pass\n'
    with pytest.raises(GenerateMetadataError, match="can't have a default value"):
        _generate(code)


def test_query_parameter_type_must_be_simple():
    code = '@Route("a")\nclass A:\n    @Get()\n    def index(self, filters: dict[str, str] = Query()) -> str:\n        pass\n'
    with pytest.raises(GenerateMetadataError, match="@Query\\('filters'\\) Can't support 'nestedObjectLiteral' type."):
        _generate(code)


def test_header_parameter_cannot_be_an_array():
    code = '@Route("a")\nclass A:\n    @Get()\n    def index(self, ids: list[int] = Header("X-Ids")) -> str:\n        pass\n'
    with pytest.raises(GenerateMetadataError, match="Can't support 'array' type."):
        _generate(code)


def test_only_one_body_parameter():
    code = '@Route("a")\nclass A:\n    @Post()\n    def index(self, a: User = Body(), b: User = Body()) -> str:\n        pass\n'
    with pytest.raises(GenerateMetadataError, match="Only one body parameter allowed in 'index' method."):
        _generate(code)


def test_body_and_body_prop_are_exclusive():
    code = '@Route("a")\nclass A:\n    @Post()\n    def index(self, a: User = Body(), b: str = BodyProp()) -> str:\n        pass\n'
    with pytest.raises(GenerateMetadataError, match="Choose either during @Body or @BodyProp in 'index' method."):
        _generate(code)


def test_variadic_parameters_are_rejected():
    code = '@Route("a")\nclass A:\n    @Get()\n    def index(self, *args) -> str:\n        pass\n'
    with pytest.raises(GenerateMetadataError, match="Variadic parameter 'args' is not supported"):
        _generate(code)


def test_missing_parameter_annotation():
    code = '@Route("a")\nclass A:\n    @Get()\n    def index(self, q=Query()) -> str:\n        pass\n'
    with pytest.raises(GenerateMetadataError, match="needs a type annotation"):
        _generate(code)


def test_static_method_keeps_first_argument():
    code = '@Route("a")\nclass A:\n    @Get("{self}")\n    @staticmethod\n    def index(self: str) -> str:\n        pass\n'
    (param,) = _methods(code)["index"].parameters
    assert param.name == "self"


# --- Docstrings ---


def test_parse_docstring():
    summary, description, args = parse_docstring(
        """List users.

        Supports paging.

        Second paragraph.

        Args:
            page: Page number.
            size (int): Page size.

        Returns:
            The users.
        """
    )
    assert summary == "List users."
    assert description == "Supports paging.\n\nSecond paragraph."
    assert args == {"page": "Page number.", "size": "Page size."}


def test_parse_empty_docstring():
    assert parse_docstring(None) == ("", "", {})
