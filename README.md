# codexacp

Pieces for an agent that drives a Codex `app-server` process on behalf of an
editor client. The package has no third-party dependencies.

## Modules

### `codexacp.prompt_args`

This module parses slash commands and expands saved prompts.

- `parse_slash_name(line)` splits `/name rest` into `(name, rest)`. It returns
  `None` when the line is not a command. For example,
  `parse_slash_name("/review USER=Alice")` gives `("review", "USER=Alice")`.
- `prompt_argument_names(content)` lists the `$NAME` placeholders in the order
  they first appear, without duplicates. Escaped `$$NAME` and the special
  `$ARGUMENTS` are left out.
- `parse_prompt_inputs(rest)` reads shell-quoted `key=value` tokens into a
  dict. It raises `PromptArgsError` when a token has no `=` or has an empty key.
- `expand_custom_prompt(name, rest, custom_prompts)` looks up a `CustomPrompt`
  by name and fills in its placeholders.
  - It returns `None` if no prompt has that name.
  - A prompt with named placeholders needs `key=value` input.
  - Any other prompt takes positional words for `$1`..`$9` and `$ARGUMENTS`.
  - If the input does not fit, it raises `PromptExpansionError`.
    `user_message()` gives the text to show the user.
- `expand_numeric_placeholders(content, args)` does the positional expansion on
  its own. `$$` is kept as it is.

### `codexacp.app_server`

This module has `AppServerProcess`, an asyncio JSON-RPC client for
`codex app-server --listen stdio://`.

- `AppServerProcess.spawn(codex_bin)` starts the child process.
- You can also build one directly from a writer and an `asyncio.StreamReader`.
- Requests:
  - `initialize`, which also sends `initialized`
  - `model_list`
  - `thread_start`, `thread_resume`, `thread_list`, `thread_compact_start`,
    `thread_rollback`
  - `turn_start`, `turn_interrupt`
- Each request waits for its own response. Any notification or server request
  that arrives in the meantime is queued, and `next_message()` returns queued
  messages first, in order.
- Replies to server requests go through `send_command_approval_response`,
  `send_file_change_approval_response`,
  `send_tool_request_user_input_response` and `send_server_request_error`.
- Failures raise `AppServerError`. These include a closed stream, a write
  error, or an error response.
- `close()` kills the child. The object also works as an async context manager.

### `codexacp.turn_state`

- `TurnState` holds the bookkeeping for each turn: the active turn id and mode,
  tool calls that have started, fallback plan progress and file-change tracking.
- `prepare_for_new_turn(turn_id, mode)` clears that state and marks the new
  turn as active.
- `finalize_active_turn(turn_id)` clears the active turn.
- `reset_turn_transient_state()` clears everything except
  `carryover_plan_steps` and `replay_turns`.
- Supporting enums and dataclasses: `ModeKind`, `EditApprovalMode`,
  `FallbackPlanPhase` and `FallbackPlanState`.

## Example

```python
from pathlib import Path
from codexacp.prompt_args import CustomPrompt, expand_custom_prompt

prompts = [CustomPrompt(name="review", path=Path("/tmp/review.md"),
                        content="Review $USER changes on $BRANCH")]
print(expand_custom_prompt("review", 'USER="Alice Smith" BRANCH=main', prompts))
# Review Alice Smith changes on main
```

```python
import asyncio
from codexacp.app_server import AppServerProcess

async def main():
    async with await AppServerProcess.spawn("codex") as app:
        await app.initialize("my-client", "My Client")
        print(await app.model_list())

asyncio.run(main())
```

## What this package does not do

These are library pieces only. The package has no command to run, and it does
not serve the editor-facing agent protocol. It does not read configuration, and
it does not turn app-server events into editor updates. You need a `codex`
executable to use `AppServerProcess.spawn`.

## Running the tests

```
pip install -e ".[test]"
pytest
```