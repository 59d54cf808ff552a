"""
Tests for agents, their system prompts and handoff tools.
"""

import json

import httpx

from micro_ai import Agent, ChatOptions, Orchestrator
from micro_ai.agent import SYSTEM_PROMPT_EXTRA, slugify
from micro_ai.clients.llm_client import LLMClient
from micro_ai.tool_schema_manager import create_tool


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def tool_call(name, arguments):
    return {
        "choices": [
            {
                "message": {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {
                            "id": "call_1",
                            "type": "function",
                            "function": {"name": name, "arguments": arguments},
                        }
                    ],
                }
            }
        ]
    }


def make_client(requests, replies):
    queue = list(replies)

    def handler(request):
        requests.append(json.loads(request.content))
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(200, json=item)

    return LLMClient(
        "https://llm.test/v1", "sk-test", transport=httpx.MockTransport(handler)
    )


def test_slugify():
    assert slugify("  Math Expert! ") == "math-expert"
    assert slugify("Data_Analyst -- v2") == "data-analyst-v2"
    assert slugify("--Weird__Name--") == "weird-name"


def test_system_prompt_sections():
    weather = create_tool("get_weather", "fetch the forecast", {}, lambda args: "sun")
    agent = Agent(
        "Travel Planner",
        "plans trips",
        goal="Plan a weekend",
        additional_instructions="Answer in French",
        options=ChatOptions(tools=[weather]),
        llm_client=make_client([], [completion("ok")]),
    )

    prompt = agent.session.get_system_prompt()

    assert prompt.startswith("# ROLE\nYou are a Travel Planner.")
    assert "## BACKGROUND\nplans trips." in prompt
    assert "## MAIN GOAL\nPlan a weekend" in prompt
    assert "## ADDITIONAL INSTRUCTIONS\nAnswer in French" in prompt
    assert (
        "## TOOL HINTS\nYou have access to the following tools: "
        "\n- get_weather [get-weather]: Its role is to fetch the forecast"
    ) in prompt
    assert prompt.endswith(SYSTEM_PROMPT_EXTRA)
    assert agent.model == "gpt-4o-mini"


def test_system_prompt_without_tools():
    agent = Agent("Helper", "helps", llm_client=make_client([], [completion("ok")]))

    prompt = agent.session.get_system_prompt()

    assert "## MAIN GOAL" not in prompt
    assert "You have access to the following tools: \n - None provided" in prompt


def test_orchestrator_exposes_handoff_tools():
    expert = Agent(
        "Math Expert",
        "solves equations",
        goal="solve math problems",
        llm_client=make_client([], [completion("ok")]),
    )
    orchestrator = Orchestrator(
        "Coordinator",
        "routes requests",
        handoffs=[expert],
        llm_client=make_client([], [completion("ok")]),
    )

    assert orchestrator.position == "orchestrator"
    [schema] = orchestrator.session.tool_mgr.get_openai_tools()
    function = schema["function"]
    assert function["name"] == "math-expert"
    assert function["description"] == (
        "You are a Math Expert. Use this tool to solve math problems"
    )
    assert function["parameters"]["required"] == ["prompt"]
    assert "\n- Math Expert [math-expert]: Its role is to solves equations" in (
        orchestrator.session.get_system_prompt()
    )


async def test_handoff_forwards_prompt_to_agent():
    expert_requests, orchestrator_requests = [], []
    expert = Agent(
        "Math Expert",
        "solves equations",
        llm_client=make_client(expert_requests, [completion("x = 4")]),
    )
    orchestrator = Orchestrator(
        "Coordinator",
        "routes requests",
        handoffs=[expert],
        llm_client=make_client(
            orchestrator_requests,
            [
                tool_call("math-expert", json.dumps({"prompt": "Solve 2x = 8"})),
                completion("The expert says x = 4"),
            ],
        ),
    )

    response = await orchestrator.chat("What is x if 2x = 8?")

    assert response.completion.content == "The expert says x = 4"
    assert expert_requests[0]["messages"][-1] == {
        "role": "user",
        "content": "Solve 2x = 8",
    }
    tool_message = orchestrator_requests[1]["messages"][-1]
    assert tool_message["role"] == "tool"
    assert tool_message["tool_call_id"] == "call_1"
    assert tool_message["content"] == "x = 4"
    assert [m["role"] for m in expert.get_messages()][-2:] == ["user", "assistant"]
