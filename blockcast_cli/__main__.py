from blockcast_cli.resolve_cmd import main

main()
