from principles_sync.cli import main

main()
