"""``python -m idiomcheck`` entry point."""

from idiomcheck.main import main

raise SystemExit(main())
