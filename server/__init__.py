"""Display server components: frame store, registry, acceptor and broadcaster."""
