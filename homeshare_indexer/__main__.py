from homeshare_indexer.main import main

main()
