"""Generate the RSA key pair used to sign and verify tokens.

Writes PEM files to PRIVATE_KEY_PATH / PUBLIC_KEY_PATH (or the paths
given on the command line).  Equivalent to::

    openssl genpkey -algorithm RSA -pkeyopt rsa_keygen_bits:3072 -out private.pem
    openssl rsa -in private.pem -pubout -out public.pem
"""
import argparse
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.auth.keys import MIN_KEY_SIZE, generate_rsa_keypair
from app.config import get_settings


def write_key_pair(private_path: Path, public_path: Path, bits: int, force: bool = False) -> None:
    """Generate a key pair and write it, refusing to clobber existing files."""
    if not force:
        existing = [p for p in (private_path, public_path) if p.exists()]
        if existing:
            raise FileExistsError(
                f"{', '.join(str(p) for p in existing)} already exists (use --force to overwrite)"
            )

    private_pem, public_pem = generate_rsa_keypair(bits)

    private_path.parent.mkdir(parents=True, exist_ok=True)
    public_path.parent.mkdir(parents=True, exist_ok=True)

    # Private key is created owner-read/write only
    fd = os.open(private_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(private_pem)
    os.chmod(private_path, 0o600)
    public_path.write_bytes(public_pem)


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Generate the token signing key pair")
    parser.add_argument("--private", type=Path, default=settings.private_key_path)
    parser.add_argument("--public", type=Path, default=settings.public_key_path)
    parser.add_argument("--bits", type=int, default=3072, help=f"RSA modulus size (>= {MIN_KEY_SIZE})")
    parser.add_argument("--force", action="store_true", help="Overwrite existing key files")
    args = parser.parse_args(argv)

    if args.bits < MIN_KEY_SIZE:
        parser.error(f"--bits must be at least {MIN_KEY_SIZE}")

    try:
        write_key_pair(args.private, args.public, args.bits, force=args.force)
    except FileExistsError as exc:
        print(f"Refusing to overwrite: {exc}", file=sys.stderr)
        return 1

    print(f"Wrote private key to {args.private}")
    print(f"Wrote public key to {args.public}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
