"""
LLM Client Abstraction for Cowrite.

Provides an async unified interface for OpenAI, Anthropic, and Google LLMs
with function calling support.

Supported Models:
- OpenAI: gpt-5.x series
- Anthropic: claude-opus-4.5, claude-sonnet-4.5
- Google: gemini-2.5-flash, gemini-3-pro, gemini-3-flash

Features:
- Function calling / tool use for all providers
- Tool results carried as OpenAI-format `tool` messages, converted per provider
- API key loading from settings
- Structured response format
- Token usage tracking with cost estimation
"""

import json
import logging
import uuid
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field

# Import SDKs
try:
    import openai
    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False

try:
    import anthropic
    ANTHROPIC_AVAILABLE = True
except ImportError:
    ANTHROPIC_AVAILABLE = False

try:
    import google.generativeai as genai
    GOOGLE_AVAILABLE = True
except ImportError:
    GOOGLE_AVAILABLE = False

from cowrite.core.settings import SettingsManager, get_settings_manager

logger = logging.getLogger(__name__)


# ============================================================================
# RESPONSE MODELS
# ============================================================================

@dataclass
class ToolCall:
    """Represents a tool call request from the LLM."""
    id: str
    name: str
    arguments: Dict[str, Any]

    def to_openai(self) -> Dict[str, Any]:
        """Assistant-message `tool_calls` entry in OpenAI format."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": json.dumps(self.arguments)},
        }


@dataclass
class TokenUsage:
    """
    Token usage with cost estimation.

    Attributes:
        prompt_tokens: Number of input tokens.
        completion_tokens: Number of output tokens.
        total_tokens: Total tokens (prompt + completion).
        estimated_cost_usd: Estimated cost in USD.
        model: Model name that was used.
    """
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0
    model: str = ""


@dataclass
class LLMResponse:
    """
    Unified LLM response format.

    Attributes:
        content: Text response from LLM (if any).
        tool_calls: List of tool calls requested by LLM (if any).
        finish_reason: Reason for completion ("stop", "tool_calls", etc.).
        usage: Token usage with cost estimation.
    """
    content: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: str = "stop"
    usage: TokenUsage = field(default_factory=TokenUsage)


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    """Decode tool-call arguments; malformed JSON becomes an empty dict."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning(f"Malformed tool call arguments: {str(raw)[:200]}")
        return {}
    return value if isinstance(value, dict) else {}


# ============================================================================
# LLM CLIENT
# ============================================================================

class LLMClient:
    """
    Unified async LLM client supporting OpenAI, Anthropic and Google.

    Automatically selects provider based on model name.

    Example:
        >>> client = LLMClient()
        >>> response = await client.generate(
        ...     model="gpt-5-mini",
        ...     messages=[{"role": "user", "content": "Hello"}],
        ...     tools=[...],
        ...     system_prompt="You are a helpful assistant."
        ... )
        >>> response.content
        "Hello! How can I help you?"
    """

    OPENAI_MODELS = [
        "gpt-5.2", "gpt-5.1", "gpt-5", "gpt-5-mini", "gpt-5-nano",
        "gpt-5.2-pro", "gpt-5-pro"
    ]
    ANTHROPIC_MODELS = [
        "claude-sonnet-4.5", "claude-opus-4.5"
    ]
    GOOGLE_MODELS = [
        "gemini-2.5-flash", "gemini-3-pro", "gemini-3-flash"
    ]

    # Model parameter compatibility configuration
    MODEL_CONFIGS = {
        # GPT-5.x family: max_completion_tokens, temperature=1 only
        "gpt-5": {
            "max_tokens_param": "max_completion_tokens",
            "supports_custom_temperature": False,
            "default_temperature": 1.0
        },
        "claude": {
            "max_tokens_param": "max_tokens",
            "supports_custom_temperature": True,
            "default_temperature": 0.7
        },
        "gemini": {
            "max_tokens_param": "max_output_tokens",
            "supports_custom_temperature": True,
            "default_temperature": 0.7
        }
    }

    # Pricing per 1M tokens (input_price, output_price) in USD
    MODEL_PRICING = {
        "gpt-5.2-pro": (21.00, 168.00),
        "gpt-5-pro": (15.00, 120.00),
        "gpt-5.2": (1.75, 14.00),
        "gpt-5.1": (1.25, 10.00),
        "gpt-5-mini": (0.25, 2.00),
        "gpt-5-nano": (0.05, 0.40),
        "gpt-5": (1.25, 10.00),
        "claude-opus-4.5": (5.00, 25.00),
        "claude-sonnet-4.5": (3.00, 15.00),
        "gemini-2.5-flash": (0.30, 2.50),
        "gemini-3-pro": (3.00, 15.00),
        "gemini-3-flash": (0.50, 3.00),
    }

    def __init__(self, settings: Optional[SettingsManager] = None):
        """
        Initialize LLM client.

        Args:
            settings: Settings source for API keys (defaults to the global manager).
        """
        self.settings = settings or get_settings_manager()
        self.openai_client = None
        self.anthropic_client = None
        self.google_configured: bool = False

        logger.debug("LLMClient initialized")

    def _calculate_cost(self, model: str, prompt_tokens: int, completion_tokens: int) -> float:
        """
        Calculate estimated cost in USD for an LLM call.

        Returns:
            Estimated cost in USD (rounded to 6 decimal places).
        """
        for prefix, (input_price, output_price) in self.MODEL_PRICING.items():
            if model.startswith(prefix):
                cost = (prompt_tokens / 1_000_000) * input_price
                cost += (completion_tokens / 1_000_000) * output_price
                return round(cost, 6)

        logger.warning(f"No pricing found for model '{model}', returning $0 cost estimate")
        return 0.0

    def _usage(self, model: str, prompt_tokens: int, completion_tokens: int) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            estimated_cost_usd=self._calculate_cost(model, prompt_tokens, completion_tokens),
            model=model
        )

    def _get_provider(self, model: str) -> str:
        """
        Determine provider from model name.

        Returns:
            Provider name ("openai", "anthropic", or "google").

        Raises:
            ValueError: If model not recognized.
        """
        if model in self.OPENAI_MODELS or model.startswith("gpt"):
            return "openai"
        if model in self.ANTHROPIC_MODELS or model.startswith("claude"):
            return "anthropic"
        if model in self.GOOGLE_MODELS or model.startswith("gemini"):
            return "google"
        raise ValueError(f"Unknown model: {model}")

    def _get_model_config(self, model: str) -> Dict[str, Any]:
        for prefix, config in self.MODEL_CONFIGS.items():
            if model.startswith(prefix):
                return config

        logger.warning(f"Unknown model '{model}', using safe default config")
        return {
            "max_tokens_param": "max_tokens",
            "supports_custom_temperature": True,
            "default_temperature": 0.7
        }

    def _require_key(self, provider: str, label: str) -> str:
        api_key = self.settings.get_api_key(provider)
        if not api_key:
            raise ValueError(
                f"{label} API key not configured. "
                f"Set it in config.json or the {provider.upper()}_API_KEY environment variable."
            )
        return api_key

    def _init_openai_client(self):
        if self.openai_client is not None:
            return self.openai_client

        api_key = self._require_key("openai", "OpenAI")
        if not OPENAI_AVAILABLE:
            raise RuntimeError("OpenAI SDK not installed. Install with: pip install openai")

        self.openai_client = openai.AsyncOpenAI(api_key=api_key)
        logger.info("OpenAI client initialized successfully")
        return self.openai_client

    def _init_anthropic_client(self):
        if self.anthropic_client is not None:
            return self.anthropic_client

        api_key = self._require_key("anthropic", "Anthropic")
        if not ANTHROPIC_AVAILABLE:
            raise RuntimeError("Anthropic SDK not installed. Install with: pip install anthropic")

        self.anthropic_client = anthropic.AsyncAnthropic(api_key=api_key)
        logger.info("Anthropic client initialized successfully")
        return self.anthropic_client

    def _init_google_client(self) -> None:
        if self.google_configured:
            return

        api_key = self._require_key("google", "Google")
        if not GOOGLE_AVAILABLE:
            raise RuntimeError(
                "Google Generative AI SDK not installed. "
                "Install with: pip install google-generativeai"
            )

        genai.configure(api_key=api_key)
        self.google_configured = True
        logger.info("Google Generative AI client initialized successfully")

    async def generate(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096
    ) -> LLMResponse:
        """
        Generate LLM response with optional function calling.

        Args:
            model: Model identifier (e.g., "gpt-5-mini", "claude-sonnet-4.5").
            messages: Conversation history (OpenAI format, may include
                assistant `tool_calls` and `tool` result messages).
            system_prompt: System prompt (optional).
            tools: Function/tool schemas in OpenAI format (optional).
            temperature: Sampling temperature (0.0-1.0).
            max_tokens: Maximum tokens to generate.

        Returns:
            LLMResponse with content and/or tool calls.

        Raises:
            ValueError: If API key not configured or model unknown.
            RuntimeError: If SDK not installed or API call fails.
        """
        provider = self._get_provider(model)

        if provider == "openai":
            return await self._generate_openai(
                model, messages, system_prompt, tools, temperature, max_tokens
            )
        if provider == "anthropic":
            return await self._generate_anthropic(
                model, messages, system_prompt, tools, temperature, max_tokens
            )
        return await self._generate_google(
            model, messages, system_prompt, tools, temperature, max_tokens
        )

    # ========================================================================
    # OPENAI
    # ========================================================================

    async def _generate_openai(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str],
        tools: Optional[List[Dict[str, Any]]],
        temperature: float,
        max_tokens: int
    ) -> LLMResponse:
        client = self._init_openai_client()
        config = self._get_model_config(model)

        full_messages = []
        if system_prompt:
            full_messages.append({"role": "system", "content": system_prompt})
        full_messages.extend(messages)

        params: Dict[str, Any] = {
            "model": model,
            "messages": full_messages,
        }
        if config["supports_custom_temperature"]:
            params["temperature"] = temperature
        else:
            params["temperature"] = config["default_temperature"]
        params[config["max_tokens_param"]] = max_tokens

        if tools:
            params["tools"] = tools
            params["tool_choice"] = "auto"

        logger.info(f"OpenAI API call: model={model}, messages={len(full_messages)}, tools={len(tools) if tools else 0}")

        try:
            try:
                response = await client.chat.completions.create(**params)
            except openai.BadRequestError as e:
                error_message = str(e)
                logger.warning(f"OpenAI API parameter error: {error_message}")

                retry_needed = False
                if "max_tokens" in error_message or "max_completion_tokens" in error_message:
                    params.pop("max_tokens", None)
                    params.pop("max_completion_tokens", None)
                    if "max_completion_tokens" in error_message:
                        params["max_tokens"] = max_tokens
                    else:
                        params["max_completion_tokens"] = max_tokens
                    retry_needed = True

                if "temperature" in error_message:
                    if "gpt-5" in model:
                        params["temperature"] = 1.0
                    else:
                        params.pop("temperature", None)
                    retry_needed = True

                if not retry_needed:
                    raise
                logger.info(f"Retrying API call with adjusted parameters: {list(params.keys())}")
                response = await client.chat.completions.create(**params)

        except openai.AuthenticationError as e:
            logger.error(f"OpenAI authentication failed: {e}")
            raise ValueError("Invalid OpenAI API key.") from e
        except openai.RateLimitError as e:
            logger.error(f"OpenAI rate limit exceeded: {e}")
            raise RuntimeError("OpenAI rate limit exceeded. Please try again later.") from e
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise RuntimeError(f"OpenAI API error: {e}") from e

        message = response.choices[0].message
        finish_reason = response.choices[0].finish_reason

        tool_calls = [
            ToolCall(id=tc.id, name=tc.function.name, arguments=_parse_arguments(tc.function.arguments))
            for tc in (message.tool_calls or [])
        ]
        usage = self._usage(
            model,
            response.usage.prompt_tokens if response.usage else 0,
            response.usage.completion_tokens if response.usage else 0
        )

        logger.info(f"OpenAI response: finish_reason={finish_reason}, tool_calls={len(tool_calls)}, tokens={usage.total_tokens}, cost=${usage.estimated_cost_usd:.6f}")

        return LLMResponse(
            content=message.content or None,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            usage=usage
        )

    # ========================================================================
    # ANTHROPIC
    # ========================================================================

    async def _generate_anthropic(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str],
        tools: Optional[List[Dict[str, Any]]],
        temperature: float,
        max_tokens: int
    ) -> LLMResponse:
        client = self._init_anthropic_client()
        anthropic_messages = self._convert_messages_to_anthropic(messages)

        params: Dict[str, Any] = {
            "model": model,
            "messages": anthropic_messages,
            "temperature": temperature,
            "max_tokens": max_tokens
        }
        if system_prompt:
            params["system"] = system_prompt
        if tools:
            params["tools"] = self._convert_tools_to_anthropic(tools)

        logger.info(f"Anthropic API call: model={model}, messages={len(anthropic_messages)}, tools={len(tools) if tools else 0}")

        try:
            response = await client.messages.create(**params)
        except anthropic.AuthenticationError as e:
            logger.error(f"Anthropic authentication failed: {e}")
            raise ValueError("Invalid Anthropic API key.") from e
        except anthropic.RateLimitError as e:
            logger.error(f"Anthropic rate limit exceeded: {e}")
            raise RuntimeError("Anthropic rate limit exceeded. Please try again later.") from e
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise RuntimeError(f"Anthropic API error: {e}") from e

        text_parts: List[str] = []
        tool_calls: List[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=dict(block.input or {})))

        usage = self._usage(model, response.usage.input_tokens, response.usage.output_tokens)

        logger.info(f"Anthropic response: stop_reason={response.stop_reason}, tool_calls={len(tool_calls)}, tokens={usage.total_tokens}, cost=${usage.estimated_cost_usd:.6f}")

        return LLMResponse(
            content="".join(text_parts) or None,
            tool_calls=tool_calls,
            finish_reason="tool_calls" if tool_calls else (response.stop_reason or "stop"),
            usage=usage
        )

    # ========================================================================
    # GOOGLE
    # ========================================================================

    async def _generate_google(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str],
        tools: Optional[List[Dict[str, Any]]],
        temperature: float,
        max_tokens: int
    ) -> LLMResponse:
        self._init_google_client()

        generation_config = genai.types.GenerationConfig(
            temperature=temperature,
            max_output_tokens=max_tokens
        )
        model_kwargs: Dict[str, Any] = {
            "model_name": model,
            "generation_config": generation_config
        }
        if system_prompt:
            model_kwargs["system_instruction"] = system_prompt
        if tools:
            google_tools = self._convert_tools_to_google(tools)
            if google_tools:
                model_kwargs["tools"] = google_tools

        google_model = genai.GenerativeModel(**model_kwargs)
        google_messages = self._convert_messages_to_google(messages)

        logger.info(f"Google API call: model={model}, messages={len(google_messages)}, tools={len(tools) if tools else 0}")

        try:
            response = await google_model.generate_content_async(google_messages)
        except Exception as e:
            error_str = str(e)
            logger.error(f"Google API error: {e}", exc_info=True)
            if "API_KEY" in error_str.upper() or "AUTHENTICATION" in error_str.upper():
                raise ValueError("Invalid Google API key.") from e
            if "QUOTA" in error_str.upper() or "RATE" in error_str.upper():
                raise RuntimeError("Google API rate limit or quota exceeded. Please try again later.") from e
            raise RuntimeError(f"Google API error: {error_str}") from e

        text_parts: List[str] = []
        tool_calls: List[ToolCall] = []
        finish_reason = "stop"

        if response.candidates:
            candidate = response.candidates[0]
            for part in candidate.content.parts:
                if getattr(part, "function_call", None) and part.function_call.name:
                    fc = part.function_call
                    tool_calls.append(ToolCall(
                        id=f"call_{uuid.uuid4().hex[:8]}",
                        name=fc.name,
                        arguments=dict(fc.args) if fc.args else {}
                    ))
                elif getattr(part, "text", None):
                    text_parts.append(part.text)

            google_reason = str(getattr(candidate, "finish_reason", ""))
            if "MAX_TOKENS" in google_reason:
                finish_reason = "length"
            elif "SAFETY" in google_reason:
                finish_reason = "content_filter"
        if tool_calls:
            finish_reason = "tool_calls"

        prompt_tokens = 0
        completion_tokens = 0
        if getattr(response, "usage_metadata", None):
            prompt_tokens = getattr(response.usage_metadata, "prompt_token_count", 0) or 0
            completion_tokens = getattr(response.usage_metadata, "candidates_token_count", 0) or 0
        usage = self._usage(model, prompt_tokens, completion_tokens)

        logger.info(f"Google response: finish_reason={finish_reason}, tool_calls={len(tool_calls)}, tokens={usage.total_tokens}, cost=${usage.estimated_cost_usd:.6f}")

        return LLMResponse(
            content="".join(text_parts) or None,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            usage=usage
        )

    # ========================================================================
    # FORMAT CONVERSION
    # ========================================================================

    def _convert_messages_to_google(
        self, messages: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """
        Convert OpenAI message format to Google Generative AI format.

        - user -> {"role": "user", "parts": [text]}
        - assistant -> {"role": "model", "parts": [text, {"function_call": ...}]}
        - tool -> {"role": "user", "parts": [{"function_response": ...}]}
        - system messages are dropped (system_instruction carries them)
        """
        google_messages: List[Dict[str, Any]] = []
        call_names: Dict[str, str] = {}

        for msg in messages:
            role = msg.get("role")
            if role == "system":
                continue

            if role == "tool":
                name = call_names.get(msg.get("tool_call_id", ""), msg.get("name", "tool"))
                part = {"function_response": {"name": name, "response": {"result": msg.get("content", "")}}}
                if google_messages and google_messages[-1]["role"] == "user" and google_messages[-1].get("_tool"):
                    google_messages[-1]["parts"].append(part)
                else:
                    google_messages.append({"role": "user", "parts": [part], "_tool": True})
                continue

            parts: List[Any] = []
            if msg.get("content"):
                parts.append(msg["content"])
            for tc in msg.get("tool_calls") or []:
                func = tc.get("function", {})
                call_names[tc.get("id", "")] = func.get("name", "")
                parts.append({"function_call": {"name": func.get("name", ""), "args": _parse_arguments(func.get("arguments"))}})
            if not parts:
                parts.append("")

            google_messages.append({"role": "user" if role == "user" else "model", "parts": parts})

        for message in google_messages:
            message.pop("_tool", None)
        return google_messages

    def _convert_tools_to_google(
        self, tools: List[Dict[str, Any]]
    ) -> List[Any]:
        """Convert OpenAI tool format to a Google Tool of FunctionDeclarations."""
        google_functions = []

        for tool in tools:
            if tool.get("type") == "function":
                func = tool["function"]
                google_functions.append({
                    "name": func["name"],
                    "description": func.get("description", ""),
                    "parameters": func.get("parameters", {"type": "object", "properties": {}})
                })

        if google_functions:
            return [genai.protos.Tool(function_declarations=[
                genai.protos.FunctionDeclaration(**f) for f in google_functions
            ])]
        return []

    def _convert_messages_to_anthropic(
        self, messages: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """
        Convert OpenAI message format to Anthropic format.

        Assistant `tool_calls` become `tool_use` blocks; consecutive `tool`
        messages are merged into one user message of `tool_result` blocks.
        System messages are dropped (passed separately).
        """
        anthropic_messages: List[Dict[str, Any]] = []

        for msg in messages:
            role = msg.get("role")
            if role == "system":
                continue

            if role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.get("tool_call_id", ""),
                    "content": msg.get("content", ""),
                }
                last = anthropic_messages[-1] if anthropic_messages else None
                if (
                    last is not None and last["role"] == "user"
                    and isinstance(last["content"], list)
                    and all(b.get("type") == "tool_result" for b in last["content"])
                ):
                    last["content"].append(block)
                else:
                    anthropic_messages.append({"role": "user", "content": [block]})
                continue

            if role == "assistant" and msg.get("tool_calls"):
                blocks: List[Dict[str, Any]] = []
                if msg.get("content"):
                    blocks.append({"type": "text", "text": msg["content"]})
                for tc in msg["tool_calls"]:
                    func = tc.get("function", {})
                    blocks.append({
                        "type": "tool_use",
                        "id": tc.get("id", ""),
                        "name": func.get("name", ""),
                        "input": _parse_arguments(func.get("arguments")),
                    })
                anthropic_messages.append({"role": "assistant", "content": blocks})
                continue

            anthropic_messages.append({
                "role": role,
                "content": msg.get("content") or ""
            })

        return anthropic_messages

    def _convert_tools_to_anthropic(
        self, tools: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """
        Convert OpenAI tool format to Anthropic format.

        OpenAI: {"type": "function", "function": {"name", "description", "parameters"}}
        Anthropic: {"name", "description", "input_schema"}
        """
        anthropic_tools = []

        for tool in tools:
            if tool.get("type") == "function":
                func = tool["function"]
                anthropic_tools.append({
                    "name": func["name"],
                    "description": func.get("description", ""),
                    "input_schema": func.get("parameters", {"type": "object", "properties": {}})
                })

        return anthropic_tools


__all__ = ["LLMClient", "LLMResponse", "ToolCall", "TokenUsage"]
