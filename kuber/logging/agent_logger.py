"""
Agent Logger for Markdown Execution Logs.
Creates a human-readable record of what the assistant heard, decided
and did.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
import json

logger = logging.getLogger(__name__)


class AgentLogger:
    """
    Markdown logger for agent execution.

    Creates structured, human-readable logs that document:
    - Committed transcripts and typed commands
    - Detected intents and entities
    - Business actions and their replies
    - Parchi scans
    - Turn latency and errors
    """

    def __init__(self, log_path: str = "logs/agent_log.md"):
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        self._queue: asyncio.Queue = asyncio.Queue()
        self._writer_task: Optional[asyncio.Task] = None
        self._running = False

        # Start the async writer
        self._start_writer()

    def _start_writer(self):
        """Start the background log writer."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No event loop, will write synchronously
            return
        self._writer_task = asyncio.create_task(self._write_loop())
        self._running = True

    async def _write_loop(self):
        """Background loop to write logs asynchronously."""
        while self._running:
            try:
                entry = await asyncio.wait_for(self._queue.get(), timeout=1.0)
                self._sync_write(entry)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Log writer error: {e}")

    def _sync_write(self, entry: str):
        try:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(entry)
                f.write("\n")
        except Exception as e:
            logger.error(f"Failed to write log: {e}")

    async def _log(self, entry: str):
        """Add a log entry to the queue."""
        if self._running and self._writer_task:
            await self._queue.put(entry)
        else:
            self._sync_write(entry)

    # =========================
    # Public Logging Methods
    # =========================

    async def log_session_start(
        self,
        session_id: str,
        language: Optional[str],
        model_source: str
    ):
        """Log the start of a new conversation."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        entry = f"""
---

## 🆕 Session Started: `{session_id}`

**Timestamp:** {timestamp}
**Language:** {language or 'not chosen'}
**Model:** {model_source}

---
"""
        await self._log(entry)

    async def log_transcript(
        self,
        session_id: str,
        text: str,
        confidence: Optional[float] = None,
        source: str = "voice"
    ):
        """Log a committed transcript or typed command."""
        timestamp = datetime.now().strftime("%H:%M:%S")

        conf_line = ""
        if confidence is not None:
            if confidence >= 0.9:
                indicator = "🟢"
            elif confidence >= 0.7:
                indicator = "🟡"
            else:
                indicator = "🔴"
            conf_line = f"**Confidence:** {indicator} {confidence:.2%}"

        entry = f"""### 🎤 User Input | {timestamp}

**Session:** `{session_id}`
**Source:** {source}
**Text:** "{text}"
{conf_line}
"""
        await self._log(entry)

    async def log_intent(
        self,
        session_id: str,
        intent: Dict[str, Any]
    ):
        """Log intent detection output (IntentResult.to_dict())."""
        timestamp = datetime.now().strftime("%H:%M:%S")

        entities = json.dumps(intent.get("entities", {}), ensure_ascii=False)

        entry = f"""#### 🧭 Intent: `{intent.get('intent')}` | {timestamp}

**Confidence:** {intent.get('confidence', 0):.2f}
**Trigger:** {intent.get('trigger') or 'None'}
**Entities:** `{entities}`
"""
        await self._log(entry)

    async def log_action(
        self,
        session_id: str,
        intent: str,
        reply: str,
        latency_ms: Optional[float] = None
    ):
        """Log a routed action and the reply it produced."""
        timestamp = datetime.now().strftime("%H:%M:%S")

        display_reply = reply if len(reply) <= 500 else reply[:500] + "..."

        entry = f"""#### 🔧 Action for `{intent}` | {timestamp}

> {display_reply}

{f'**Execution Time:** {latency_ms:.0f}ms' if latency_ms else ''}
"""
        await self._log(entry)

    async def log_parchi_scan(
        self,
        session_id: str,
        result: Dict[str, Any],
        latency_ms: Optional[float] = None
    ):
        """Log a finished parchi scan (ParchiData.to_dict())."""
        timestamp = datetime.now().strftime("%H:%M:%S")

        items = result.get("items", [])
        output_str = json.dumps(items, indent=2, ensure_ascii=False)
        if len(output_str) > 500:
            output_str = output_str[:500] + "\n  ... (truncated)"

        entry = f"""#### 🧾 Parchi Scan | {timestamp}

**Session:** `{session_id}`
**Source:** {result.get('source')}
**Confidence:** {result.get('confidence', 0):.2f}
**Total:** {result.get('totalAmount')}

```json
{output_str}
```
{f'**Scan Time:** {latency_ms:.0f}ms' if latency_ms else ''}
"""
        await self._log(entry)

    async def log_turn_complete(
        self,
        session_id: str,
        user_text: str,
        agent_text: str,
        language: Optional[str],
        intent: str,
        metrics: Dict[str, Any]
    ):
        """Log a complete conversation turn with metrics."""
        timestamp = datetime.now().strftime("%H:%M:%S")

        total_latency = metrics.get("total_latency_ms", 0)

        if total_latency < 800:
            latency_status = "🟢 Excellent"
        elif total_latency < 1500:
            latency_status = "🟡 Good"
        else:
            latency_status = "🔴 Slow"

        def ms(key: str) -> str:
            value = metrics.get(key)
            return f"{value:.0f}ms" if value is not None else "N/A"

        entry = f"""### ✅ Turn Complete | {timestamp}

**Session:** `{session_id}`
**Language:** {language}
**Intent:** `{intent}`

**User:** {user_text}
**Kuber:** {agent_text}

| Metric | Value |
|--------|-------|
| Total Latency | {latency_status} ({total_latency:.0f}ms) |
| Commit Wait | {ms('commit_wait_ms')} |
| Action | {ms('action_latency_ms')} |
| Speech Start | {ms('speech_start_ms')} |

---
"""
        await self._log(entry)

    async def log_error(
        self,
        session_id: str,
        error_type: str,
        error_message: str,
        stack_trace: Optional[str] = None
    ):
        """Log an error."""
        timestamp = datetime.now().strftime("%H:%M:%S")

        entry = f"""### ❌ Error | {timestamp}

**Session:** `{session_id}`
**Type:** `{error_type}`
**Message:** {error_message}
"""

        if stack_trace:
            entry += f"""
<details>
<summary>Stack Trace</summary>

```
{stack_trace}
```

</details>
"""

        await self._log(entry)

    async def log_system_event(
        self,
        event: str,
        details: Dict[str, Any]
    ):
        """Log a system event."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        details_str = ""
        for key, value in details.items():
            details_str += f"- **{key}:** {value}\n"

        entry = f"""### ⚙️ System Event | {timestamp}

**Event:** {event}

{details_str}
---
"""
        await self._log(entry)

    async def initialize_log(self, languages: Optional[List[str]] = None):
        """Initialize the log file with header."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        language_lines = "\n".join(f"- {lang}" for lang in (languages or []))

        header = f"""# 🪙 Kuber Execution Log

**Generated:** {timestamp}

---

## System Overview

Voice and text commands from the shop counter, with the intent detected
for each one, the action taken and the reply spoken back.

**Pipeline:** Speech → Commit → Intent → Action → Reply → Speech

**Supported Languages:**
{language_lines}

---

## Execution Log

"""

        # Overwrite file with header
        with open(self.log_path, "w", encoding="utf-8") as f:
            f.write(header)

        logger.info(f"Agent log initialized: {self.log_path}")

    async def close(self):
        """Close the logger and flush pending entries."""
        self._running = False

        if self._writer_task:
            self._writer_task.cancel()
            try:
                await self._writer_task
            except asyncio.CancelledError:
                pass

        # Write any remaining entries
        while not self._queue.empty():
            try:
                entry = self._queue.get_nowait()
                self._sync_write(entry)
            except asyncio.QueueEmpty:
                break

        logger.info("Agent logger closed")
