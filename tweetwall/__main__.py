from tweetwall.cli import main

raise SystemExit(main())
