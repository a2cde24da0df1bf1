import asyncio
import contextlib
import os
import sys

# Add src to path for running directly
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from coreason_keycloak import CoreasonKeycloakError, KeycloakClient, error_response


async def main() -> None:
    """
    Logs a user in and verifies the issued access token locally.

    Expects KEYCLOAK_CLIENT_ID, KEYCLOAK_CLIENT_SECRET, KEYCLOAK_REALM and
    KEYCLOAK_URL in the environment, plus DEMO_USERNAME / DEMO_PASSWORD.
    """
    print(">>> Starting Keycloak login example")

    username = os.getenv("DEMO_USERNAME", "alice")
    password = os.getenv("DEMO_PASSWORD", "wonderland")

    # Raises ConfigMissingError naming the first absent variable
    async with KeycloakClient.from_env() as keycloak:
        print(f">>> Realm endpoints: {keycloak.endpoints.token_endpoint}")
        try:
            token = await keycloak.login(username, password)
            print(f">>> Logged in, token expires in {token.expires_in}s")

            # Verification never fetches keys on its own
            await keycloak.refresh_keys()

            claims = await keycloak.verify(token.access_token)
            print(f">>> Verified token for {claims.given_name} {claims.family_name} <{claims.email}>")

            introspection = await keycloak.introspect(token.access_token)
            print(f">>> Provider reports token active: {introspection.active}")

        except CoreasonKeycloakError as e:
            status_code, body = error_response(e)
            print(f">>> Failed ({e.kind}): HTTP {status_code} {body.model_dump_json()}")


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
