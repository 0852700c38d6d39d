"""
Agent loop: lets the completion API drive the tool registry.

One call to AgentLoop.run() handles one user message:

1. Append the message to the conversation history.
2. Send history, the registry's tool schemas and the system prompt.
3. While the response asks for tools, run every requested call of that
   response concurrently, append the assistant turn and the full batch of
   results as one user turn, and ask again.
4. Return the first text block of the final response.

Handler failures are returned to the model as error tool results and the
loop continues. Failures talking to the completion API abort the request.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import anthropic

from portfolio_mcp.env_config import DEFAULT_MODEL
from portfolio_mcp.errors import ConfigurationError, ToolError, UpstreamError
from portfolio_mcp.registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096
DEFAULT_MAX_ROUNDS = 10
NO_RESPONSE = "No response"
STOPPED_EARLY_MESSAGE = (
    "I stopped after reaching the maximum number of tool rounds for one request. "
    "Ask me to continue if you need more."
)

SYSTEM_PROMPT = """You are the AI-in-a-Box Dev Dashboard assistant. You help the Digital Alpha team manage AI implementations across their portfolio companies.

You have access to tools that let you:
- View and update company status, milestones, and requirements
- Track dev tasks and assignments
- Manage documents and files
- Track deployments and check their health
- Send emails and project updates
- Read the calendar and mailbox
- View activity logs

Current portfolio companies:
- DTIQ (video surveillance, loss prevention) - Zendesk, Salesforce, ChurnZero
- Element 8 / ATLINK (ISP, wireless broadband) - Powercode, PowerNOC, WISDM, etc
- QWILT (CDN, edge computing) - Slack-based support
- PacketFabric (network connectivity) - ServiceNow
- Welink (ISP, similar to Element 8) - Discovery phase

Be concise and direct. Use tools to get real data - don't guess.
When you complete an action, confirm what you did.
For sending emails, confirm the recipient and content first."""


@dataclass
class AgentResult:
    """Outcome of one agent run."""
    response: str
    conversation_history: List[Dict[str, Any]]
    rounds: int = 0
    stopped_early: bool = False
    tool_calls: List[str] = field(default_factory=list)


def _block_dict(block) -> Dict[str, Any]:
    """Content block as a plain JSON-serializable dict."""
    if isinstance(block, dict):
        return block
    return block.model_dump(mode="json", exclude_none=True)


def _first_text(blocks: List[Dict[str, Any]]) -> Optional[str]:
    for block in blocks:
        if block.get("type") == "text" and block.get("text"):
            return block["text"]
    return None


class AgentLoop:
    """Runs conversations against the completion API with the registry's tools."""

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        registry: ToolRegistry,
        ctx,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.client = client
        self.registry = registry
        self.ctx = ctx
        self.model = model
        self.max_tokens = max_tokens
        self.max_rounds = max_rounds
        self.system_prompt = system_prompt
        self._tools = registry.anthropic_tools()

    async def _complete(self, messages: List[Dict[str, Any]]):
        try:
            return await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=self.system_prompt,
                tools=self._tools,
                messages=messages,
            )
        except anthropic.APIError as e:
            logger.error(f"Completion API request failed: {e}")
            raise UpstreamError(f"Completion API request failed: {e}", step="completion") from e

    async def _run_tool(self, call: Dict[str, Any]) -> Dict[str, Any]:
        """Run one requested tool call and build its tool_result block."""
        name = call.get("name")
        try:
            result = await self.registry.invoke(self.ctx, name, call.get("input") or {})
        except ToolError as e:
            return {
                "type": "tool_result",
                "tool_use_id": call.get("id"),
                "content": json.dumps({"error": str(e)}),
                "is_error": True,
            }
        return {
            "type": "tool_result",
            "tool_use_id": call.get("id"),
            "content": json.dumps(result, default=str),
        }

    async def run(self, message: str, history: Optional[List[Dict[str, Any]]] = None) -> AgentResult:
        """
        Answer one user message, running tools as the model requests.

        Args:
            message: The new user message
            history: Prior turns as returned by an earlier run

        Returns:
            AgentResult: Final text, updated history and round accounting

        Raises:
            UpstreamError: If the completion API cannot be reached or errors
        """
        messages = list(history or [])
        messages.append({"role": "user", "content": message})

        response = await self._complete(messages)
        rounds = 0
        stopped_early = False
        tool_calls: List[str] = []

        while response.stop_reason == "tool_use":
            if rounds >= self.max_rounds:
                logger.warning(f"Agent loop stopped after {rounds} tool rounds")
                stopped_early = True
                break

            blocks = [_block_dict(b) for b in response.content]
            calls = [b for b in blocks if b.get("type") == "tool_use"]
            tool_calls.extend(c.get("name") for c in calls)
            logger.info(f"Round {rounds + 1}: {', '.join(c.get('name', '?') for c in calls)}")

            results = await asyncio.gather(*(self._run_tool(c) for c in calls))
            messages.append({"role": "assistant", "content": blocks})
            messages.append({"role": "user", "content": list(results)})
            rounds += 1

            response = await self._complete(messages)

        blocks = [_block_dict(b) for b in response.content]
        text = _first_text(blocks)
        if stopped_early:
            # history must not end with tool_use blocks that have no results
            blocks = [b for b in blocks if b.get("type") == "text"] or [
                {"type": "text", "text": STOPPED_EARLY_MESSAGE}
            ]
            text = text or STOPPED_EARLY_MESSAGE
        messages.append({"role": "assistant", "content": blocks})

        return AgentResult(
            response=text or NO_RESPONSE,
            conversation_history=messages,
            rounds=rounds,
            stopped_early=stopped_early,
            tool_calls=tool_calls,
        )


def build_agent(ctx, registry: ToolRegistry) -> AgentLoop:
    """
    Create the agent loop from the context's settings.

    Raises:
        ConfigurationError: If ANTHROPIC_API_KEY is not set
    """
    settings = ctx.settings
    if not settings.llm_configured:
        raise ConfigurationError("Chat not configured. Set the ANTHROPIC_API_KEY environment variable.")
    client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    return AgentLoop(
        client,
        registry,
        ctx,
        model=settings.anthropic_model,
        max_rounds=settings.agent_max_rounds,
    )
