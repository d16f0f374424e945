"""Generate an Apple Music developer token (ES256 JWT).

Reads APPLE_MUSIC_TEAM_ID, APPLE_MUSIC_KEY_ID and APPLE_MUSIC_PRIVATE_KEY
(PEM text or a path to the .p8 file) from the environment or .env, unless
given on the command line.

    python scripts/generate_apple_music_token.py [--out .apple-music-token.txt]
"""

import argparse
import sys
from pathlib import Path

import jwt

from music_services.apple_music import MAX_TOKEN_TTL, mint_developer_token
from trapt.config import settings


def main():
    cfg = settings.apple_music
    parser = argparse.ArgumentParser(description="Generate an Apple Music developer token")
    parser.add_argument("--team-id", default=cfg.team_id)
    parser.add_argument("--key-id", default=cfg.key_id)
    parser.add_argument("--private-key", default=cfg.private_key, help="PEM text or path to .p8 file")
    parser.add_argument("--ttl", type=int, default=MAX_TOKEN_TTL, help="lifetime in seconds (max six months)")
    parser.add_argument("--out", type=Path, default=None, help="also write the token to this file")
    args = parser.parse_args()

    missing = [
        name for name, value in (
            ("APPLE_MUSIC_TEAM_ID", args.team_id),
            ("APPLE_MUSIC_KEY_ID", args.key_id),
            ("APPLE_MUSIC_PRIVATE_KEY", args.private_key),
        )
        if not value
    ]
    if missing:
        print("Missing required settings:", file=sys.stderr)
        for name in missing:
            print(f"  {name}", file=sys.stderr)
        sys.exit(1)

    try:
        token = mint_developer_token(args.team_id, args.key_id, args.private_key, ttl=args.ttl)
    except (OSError, ValueError, jwt.PyJWTError) as e:
        print(f"❌ Error generating token: {e}", file=sys.stderr)
        sys.exit(1)

    print("\n✅ Apple Music developer token generated\n")
    print(token)
    print("\nAdd this to your .env file as:")
    print(f'APPLE_MUSIC_DEVELOPER_TOKEN="{token}"\n')

    if args.out:
        args.out.write_text(token, encoding="utf-8")
        print(f"Token also saved to: {args.out}")


if __name__ == "__main__":
    main()
