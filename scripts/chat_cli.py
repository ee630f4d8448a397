#!/usr/bin/env python3
"""Interactive chat CLI for building a character with the Chronicler."""

import sys
import threading
import time

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm, Prompt

POLL_INTERVAL_SECONDS = 0.5


class ChatCLI:
    """Terminal client that plays the UI role, including tool confirmations."""

    def __init__(self, base_url: str = "http://localhost:8000", email: str = "player@example.com"):
        self.base_url = base_url
        self.email = email
        self.conversation_id: str | None = None
        self.console = Console()
        self.client = httpx.Client(timeout=120.0, headers={"x-user-email": email})

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold magenta]Chronicles of the Omuns - Character Creation[/bold magenta]\n"
                "Chat with the Chronicler to build your character.\n"
                "Commands: /help, /new, /history, /quit",
                border_style="magenta",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]Cannot connect to the Chronicler at {self.base_url}.[/red]")
            return

        if not self._new_conversation():
            return

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/new":
                    self._new_conversation()
                    continue
                elif user_input.lower() == "/history":
                    self._show_history()
                    continue
                elif user_input.strip() == "":
                    continue

                response = self._send_message(user_input)
                if response:
                    self._display_response(response)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]Farewell, adventurer.[/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _new_conversation(self) -> bool:
        response = self.client.post(f"{self.base_url}/conversations", json={})
        if response.status_code != 201:
            self.console.print(f"[red]Could not start a conversation: {response.status_code} {response.text}[/red]")
            return False

        data = response.json()
        self.conversation_id = data["conversationId"]
        self._display_text(data["initialAIResponse"])
        return True

    def _send_message(self, message: str) -> dict | None:
        """Send a turn in the background and answer confirmation prompts while it runs."""
        outcome: dict = {}

        def send() -> None:
            try:
                outcome["response"] = self.client.post(
                    f"{self.base_url}/conversations/{self.conversation_id}/messages", json={"message": message}
                )
            except httpx.HTTPError as e:
                outcome["error"] = e

        worker = threading.Thread(target=send, daemon=True)
        worker.start()

        with self.console.status("[dim]The Chronicler is thinking...[/dim]") as status:
            while worker.is_alive():
                pending = self._get_pending_confirmation()
                if pending:
                    status.stop()
                    self._answer_confirmation(pending)
                    status.start()
                time.sleep(POLL_INTERVAL_SECONDS)

        if "error" in outcome:
            self.console.print(f"[red]Connection error: {outcome['error']}[/red]")
            return None

        response = outcome["response"]
        if response.status_code == 200:
            return response.json()

        self.console.print(f"[red]API Error: {response.status_code} - {response.text}[/red]")
        return None

    def _get_pending_confirmation(self) -> dict | None:
        response = self.client.get(f"{self.base_url}/conversations/{self.conversation_id}/confirmation")
        return response.json() if response.status_code == 200 else None

    def _answer_confirmation(self, pending: dict) -> None:
        title = f"[yellow]{pending['title']}[/yellow]"
        self.console.print(Panel(pending["prompt"], title=title, border_style="yellow"))
        approved = Confirm.ask("Approve?", default=True)
        self.client.post(
            f"{self.base_url}/conversations/{self.conversation_id}/confirmation", json={"approved": approved}
        )

    def _display_response(self, response: dict) -> None:
        if response.get("toolCall"):
            self.console.print(f"[dim]Last tool used: {response['toolCall']['name']}[/dim]")
        self._display_text(response.get("aiResponse") or "...", denied=response.get("outcome") == "denied")

    def _display_text(self, text: str, denied: bool = False) -> None:
        self.console.print(
            Panel(
                Markdown(text),
                title="[bold red]Denied[/bold red]" if denied else "[bold green]The Chronicler[/bold green]",
                border_style="red" if denied else "green",
                padding=(1, 2),
            )
        )

    def _show_history(self) -> None:
        response = self.client.get(f"{self.base_url}/conversations/{self.conversation_id}/history")
        if response.status_code != 200:
            self.console.print(f"[red]Could not load history: {response.status_code}[/red]")
            return

        for message in response.json()["messages"]:
            body = message["body"] if len(message["body"]) < 300 else message["body"][:300] + "..."
            self.console.print(f"[bold]{message['id']:>4} {message['sender']:>9}[/bold]  {body}")

    def _show_help(self) -> None:
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /new - Start a new conversation
• /history - Show every stored message in this conversation
• /quit or /exit - Exit the chat

[bold]Example Conversation:[/bold]
1. "I want to make a character named Thorga"
2. "She should be a fierce warrior"
3. "Let's go with Barbarian" (you will be asked to approve the assignment)
4. "Roll my stats"
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
    email = sys.argv[2] if len(sys.argv) > 2 else "player@example.com"

    chat = ChatCLI(base_url, email)
    chat.start()


if __name__ == "__main__":
    main()
