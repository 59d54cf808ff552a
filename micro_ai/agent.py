"""
Agents and orchestrators built on a chat session.

An Agent is a ChatOrchestrator with a role-based system prompt. Agents listed
as handoffs are exposed to the model as tools named after the agent; calling
one forwards the request to that agent's own session and returns its answer.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import BaseModel, Field

from micro_ai.chat import ChatOptions, ChatOrchestrator, ChatResponse
from micro_ai.chat.models import Tool
from micro_ai.clients.llm_client import LLMClient
from micro_ai.config import Configuration
from micro_ai.tool_schema_manager import create_tool

logger = logging.getLogger(__name__)

DEFAULT_AGENT_MODEL = "gpt-4o-mini"

SYSTEM_PROMPT_EXTRA = """\
You should think step by step in order to complete the task with reasoning \
divided in Thought/Action/Observation that can repeat multiple times if needed.
You should first think about it, then if necessary, use the tools to get the \
information you need.
Go back and forth between the tools and the context until you have a complete \
understanding of the task.
Do not repeat the same tool call in consecutive calls.
Now begin!"""


def slugify(text: str) -> str:
    """Lowercase, drop punctuation, and join words with single hyphens."""
    text = re.sub(r"[^\w\s-]", "", text.lower().strip())
    return re.sub(r"[\s_-]+", "-", text).strip("-")


class HandoffRequest(BaseModel):
    """Arguments of a handoff tool."""

    prompt: str = Field(description="The prompt of the request.")


class Agent:
    """
    A chat session with a role, a goal and optional handoff agents.

    Each agent owns one ChatOrchestrator, so its conversation persists across
    chat() calls, including calls made through a handoff tool.
    """

    def __init__(
        self,
        name: str,
        background: str,
        *,
        goal: str | None = None,
        position: str | None = None,
        additional_instructions: str | None = None,
        handoffs: list[Agent] | None = None,
        options: ChatOptions | None = None,
        llm_client: LLMClient | None = None,
        configuration: Configuration | None = None,
    ):
        options = options or ChatOptions()
        self.name = name
        self.background = background
        self.goal = goal
        self.position = position
        self.additional_instructions = additional_instructions
        self.handoffs: list[Agent] = list(handoffs or [])
        self.tools: list[Tool] = list(options.tools)
        self.model = options.model or DEFAULT_AGENT_MODEL

        self.system_prompt = self._build_system_prompt()
        session_options = options.model_copy(
            update={
                "system_prompt": self.system_prompt,
                "tools": [*self.tools, *self._handoff_tools()],
                "model": self.model,
            }
        )
        self.session = ChatOrchestrator(
            session_options, llm_client=llm_client, configuration=configuration
        )
        logger.info(
            "Agent '%s' ready (position=%s, handoffs=%d)",
            name,
            position or "-",
            len(self.handoffs),
        )

    # ------------------------------------------------------------------
    # System prompt
    # ------------------------------------------------------------------

    def _build_system_prompt(self) -> str:
        sections = [f"# ROLE\nYou are a {self.name}."]
        if self.background:
            sections.append(f"## BACKGROUND\n{self.background}.")
        if self.goal:
            sections.append(f"## MAIN GOAL\n{self.goal}")
        if self.additional_instructions:
            sections.append(
                f"## ADDITIONAL INSTRUCTIONS\n{self.additional_instructions}"
            )

        tool_lists = [
            text
            for text in (self._handoffs_as_text(), self._tools_as_text())
            if text
        ]
        tools_text = ", ".join(tool_lists) if tool_lists else "\n - None provided"
        sections.append(
            f"## TOOL HINTS\nYou have access to the following tools: {tools_text}"
        )
        sections.append(SYSTEM_PROMPT_EXTRA)
        return "\n\n".join(sections)

    def _handoffs_as_text(self) -> str:
        if not self.handoffs:
            return ""
        return "\n" + "\n".join(
            f"- {agent.name} [{slugify(agent.name)}]: "
            f"Its role is to {agent.background}"
            for agent in self.handoffs
        )

    def _tools_as_text(self) -> str:
        if not self.tools:
            return ""
        return "\n" + "\n".join(
            f"- {tool.name} [{slugify(tool.name)}]: "
            f"Its role is to {tool.description}"
            for tool in self.tools
        )

    def _handoff_tools(self) -> list[Tool]:
        return [self._handoff_tool(agent) for agent in self.handoffs]

    @staticmethod
    def _handoff_tool(agent: Agent) -> Tool:
        async def handler(args: HandoffRequest) -> Any:
            logger.info("Handing off to agent '%s'", agent.name)
            response = await agent.chat(args.prompt)
            return response.completion.content or response

        return create_tool(
            slugify(agent.name),
            f"You are a {agent.name}. "
            f"Use this tool to {agent.goal or agent.background}",
            HandoffRequest,
            handler,
        )

    # ------------------------------------------------------------------
    # Session delegation
    # ------------------------------------------------------------------

    async def chat(self, prompt: str) -> ChatResponse:
        """Add a user message and answer it."""
        return await self.session.chat(prompt)

    async def invoke(self) -> ChatResponse:
        return await self.session.invoke()

    def get_messages(self) -> list[dict[str, Any]]:
        return self.session.get_messages()

    async def add_prompt(self, prompt: str) -> None:
        await self.session.add_user_message(prompt)

    async def add_assistant_prompt(self, content: str) -> None:
        await self.session.add_assistant_message(content)

    def get_metadata(self):
        return self.session.get_metadata()

    async def aclose(self) -> None:
        """Close this agent's session; handoff agents are closed by their owner."""
        await self.session.aclose()

    async def __aenter__(self) -> Agent:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class Orchestrator(Agent):
    """An agent whose position is always "orchestrator"."""

    def __init__(self, name: str, background: str, **kwargs: Any):
        kwargs["position"] = "orchestrator"
        super().__init__(name, background, **kwargs)
