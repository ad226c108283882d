from cbit.semantics.labels import resolve_labels
