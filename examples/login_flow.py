import asyncio
import contextlib
import os
import sys
from urllib.parse import parse_qs, urlsplit

# Add src to path for running directly
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from pydantic import SecretStr

from coreason_b2c.config import CoreasonB2CConfig
from coreason_b2c.manager import B2CLoginManagerAsync
from coreason_b2c.models import LoginSuccess
from coreason_b2c.session import MemorySessionStore


async def main() -> None:
    """
    Walks through one sign-in round-trip from the terminal.

    Open the printed URL, sign in, then paste the URL the browser was redirected to.
    The redirect target does not need to be running; only its query string is used.
    """
    print(">>> Starting B2C sign-in example")

    config = CoreasonB2CConfig(
        tenant=os.getenv("COREASON_B2C_TENANT", "contoso"),
        user_flow=os.getenv("COREASON_B2C_USER_FLOW", "B2C_1_signin"),
        client_id=os.getenv("COREASON_B2C_CLIENT_ID", "00000000-0000-0000-0000-000000000000"),
        client_secret=SecretStr(os.getenv("COREASON_B2C_CLIENT_SECRET", "change-me")),
        redirect_uri="http://localhost:8080/success",
        logout_redirect_uri="http://localhost:8080/sign_out",
        pii_salt=SecretStr("example-salt-for-pii-hashing"),
        http_timeout=5.0,
    )

    # One session per browser; a web framework would supply its own
    session = MemorySessionStore()

    async with B2CLoginManagerAsync(config) as manager:
        print(f">>> Open this URL in a browser:\n{manager.begin_login(session)}\n")
        redirected_to = input(">>> Paste the URL you were redirected to: ").strip()

        result = await manager.complete_login(session, parse_qs(urlsplit(redirected_to).query))

        if isinstance(result, LoginSuccess):
            print(f">>> Signed in as {result.user_name}")
            print(f"    access token valid {result.valid_from} .. {result.valid_until}")
            if result.refresh_valid_until:
                print(f"    refresh token valid until {result.refresh_valid_until}")
        else:
            print(f">>> Sign-in failed ({result.reason}): {result.message}")

        print(f">>> To sign out, open:\n{manager.begin_logout(session)}")


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
