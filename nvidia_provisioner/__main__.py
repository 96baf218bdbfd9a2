"""Allow ``python3 -m nvidia_provisioner``."""

from nvidia_provisioner.cli import main

if __name__ == "__main__":
    main()
