import logging
import os
import subprocess
from typing import Dict, List, Optional

import requests

from config import load_config

logger = logging.getLogger(__name__)


class LLMUnavailableError(RuntimeError):
    pass


def call_ollama(prompt: str, model: str = None, timeout: int = None) -> Optional[str]:
    """Call local Ollama model with prompt, return response or None on error."""
    config = load_config()
    model = model or config.get('ollama', {}).get('model', 'llama3.2')
    timeout = timeout or config.get('ollama', {}).get('timeout', 60)
    cmd = ['ollama', 'run', model]
    try:
        result = subprocess.run(
            cmd,
            input=prompt,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
            encoding='utf-8'
        )
        return result.stdout.strip()
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError) as e:
        logger.warning("Ollama call failed: %s", e)
        return None


def call_openai_chat(messages: List[Dict[str, str]], model: str = None, timeout: int = None,
                     max_tokens: int = 800) -> Optional[str]:
    """POST a chat completion to an OpenAI-compatible API, return the reply or None on error."""
    ai_cfg = load_config().get('ai', {})
    api_key = os.getenv('OPENAI_API_KEY')
    if not api_key:
        logger.warning("OPENAI_API_KEY not set; AI chat unavailable")
        return None
    try:
        response = requests.post(
            f"{ai_cfg.get('base_url', 'https://api.openai.com/v1')}/chat/completions",
            headers={'Authorization': f'Bearer {api_key}'},
            json={
                'model': model or ai_cfg.get('model', 'gpt-4o-mini'),
                'messages': messages,
                'max_tokens': max_tokens,
                'temperature': 0.4,
            },
            timeout=timeout or ai_cfg.get('timeout', 60),
        )
        response.raise_for_status()
        return response.json()['choices'][0]['message']['content'].strip()
    except (requests.RequestException, KeyError, IndexError, ValueError) as e:
        logger.warning("Chat completion failed: %s", e)
        return None


def chat(messages: List[Dict[str, str]], max_tokens: int = 800) -> str:
    """Send messages to the configured provider; raises LLMUnavailableError when it gives no reply."""
    provider = load_config().get('ai', {}).get('provider', 'openai')
    if provider == 'ollama':
        prompt = "\n\n".join(f"{m['role'].upper()}: {m['content']}" for m in messages) + "\n\nASSISTANT:"
        reply = call_ollama(prompt)
    else:
        reply = call_openai_chat(messages, max_tokens=max_tokens)
    if not reply:
        raise LLMUnavailableError(f"AI provider '{provider}' returned no response")
    return reply


def provider_status() -> Dict[str, str]:
    provider = load_config().get('ai', {}).get('provider', 'openai')
    if provider == 'openai' and not os.getenv('OPENAI_API_KEY'):
        return {'provider': provider, 'status': 'unconfigured'}
    return {'provider': provider, 'status': 'ok'}
