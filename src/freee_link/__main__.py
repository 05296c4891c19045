from freee_link.cli import main

raise SystemExit(main())
