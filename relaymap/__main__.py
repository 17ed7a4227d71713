from relaymap.cli import main

main()
