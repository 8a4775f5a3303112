import pytest

from tenx.tools import ToolRegistry, register_session_tools
from tenx.tools.ask_user import AskUserQuestionTool
from tenx.tools.plan_mode import EnterPlanModeTool, ExitPlanModeTool, PlanModeController
from tenx.tools.todo import TodoList, TodoWriteTool


def _question(text: str = "Which database?") -> dict:
    return {
        "question": text,
        "header": "Database",
        "options": [
            {"label": "SQLite", "description": "Embedded"},
            {"label": "Postgres", "description": "Server"},
        ],
        "multiSelect": False,
    }


@pytest.mark.asyncio
async def test_todowrite_replaces_list_and_reports_progress():
    todo_list = TodoList()
    tool = TodoWriteTool(todo_list)

    result = await tool.execute(todos=[
        {"content": "Write tests", "status": "completed", "activeForm": "Writing tests"},
        {"content": "Fix bug", "status": "in_progress", "activeForm": "Fixing bug"},
        {"content": "Ship", "status": "pending", "activeForm": "Shipping"},
    ])

    assert result.success is True
    assert len(todo_list) == 3
    assert result.output == (
        "1. [x] Write tests\n"
        "2. [>] Fix bug (Fixing bug)\n"
        "3. [ ] Ship\n"
        "\n"
        "Progress: 1/3 completed, 1 in progress, 1 pending"
    )


@pytest.mark.asyncio
async def test_todowrite_rejects_invalid_items():
    tool = TodoWriteTool()

    bad_status = await tool.execute(todos=[{"content": "x", "status": "done", "activeForm": "x"}])
    missing_form = await tool.execute(todos=[{"content": "x", "status": "pending"}])
    not_list = await tool.execute(todos="nope")

    assert bad_status.success is False
    assert "Invalid status: done" in (bad_status.error or "")
    assert missing_form.success is False
    assert not_list.error == "todos must be an array"


def test_empty_todo_list_format():
    assert TodoList().format() == "Todo list is empty."


@pytest.mark.asyncio
async def test_ask_user_without_prompt_falls_back_to_chat():
    result = await AskUserQuestionTool().execute(questions=[_question()])

    assert result.success is True
    assert "Database: Which database?" in (result.output or "")
    assert "1. SQLite: Embedded" in (result.output or "")
    assert (result.output or "").endswith("please respond in chat)")


@pytest.mark.asyncio
async def test_ask_user_with_prompt_reports_answers():
    asked: list[list[dict]] = []

    async def prompt(questions):
        asked.append(questions)
        return {"Which database?": "SQLite"}

    result = await AskUserQuestionTool(prompt).execute(questions=[_question()])

    assert len(asked) == 1
    assert result.output is not None
    assert result.output.startswith('User has answered your questions: "Which database?"="SQLite".')


@pytest.mark.asyncio
async def test_ask_user_validates_question_shape():
    tool = AskUserQuestionTool()
    too_many = [_question(f"Q{i}?") for i in range(5)]
    one_option = _question()
    one_option["options"] = one_option["options"][:1]

    assert (await tool.execute(questions=[])).success is False
    assert (await tool.execute(questions=too_many)).error == "Maximum 4 questions allowed"
    assert (await tool.execute(questions=[one_option])).error == "Each question must have 2-4 options"


@pytest.mark.asyncio
async def test_plan_mode_round_trip_with_callbacks():
    exits: list[str] = []

    async def on_enter(task: str):
        return True, "/tmp/plan.md"

    async def on_exit(path: str):
        exits.append(path)
        return True, "1. do it"

    controller = PlanModeController(on_enter=on_enter, on_exit=on_exit)
    enter = EnterPlanModeTool(controller)
    leave = ExitPlanModeTool(controller)

    entered = await enter.execute(task="Add caching")
    assert entered.success is True
    assert controller.active is True
    assert controller.state.original_task == "Add caching"

    left = await leave.execute()
    assert left.success is True
    assert "Plan content:\n1. do it" in (left.output or "")
    assert exits == ["/tmp/plan.md"]
    assert controller.active is False


@pytest.mark.asyncio
async def test_plan_mode_rejection_resets_state():
    async def on_enter(task: str):
        return True, "/tmp/plan.md"

    async def on_exit(path: str):
        return False, ""

    controller = PlanModeController(on_enter=on_enter, on_exit=on_exit)
    await EnterPlanModeTool(controller).execute()

    result = await ExitPlanModeTool(controller).execute()

    assert result.success is False
    assert "did not approve" in (result.error or "")
    assert controller.active is False


@pytest.mark.asyncio
async def test_exit_plan_mode_requires_active_state():
    result = await ExitPlanModeTool(PlanModeController()).execute()

    assert result.success is False
    assert (result.error or "").startswith("Not currently in plan mode")


def test_register_session_tools_shares_plan_controller():
    registry = register_session_tools(ToolRegistry())

    assert registry.names() == ["todowrite", "askuserquestion", "enterplanmode", "exitplanmode"]
    enter = registry.get("enterplanmode")
    leave = registry.get("exitplanmode")
    assert isinstance(enter, EnterPlanModeTool)
    assert isinstance(leave, ExitPlanModeTool)
    assert enter.controller is leave.controller
