from escrow_indexer.main import main

main()
